from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path, include
from django.contrib.auth.views import LoginView, LogoutView

from books import views as book_views
from . import views

urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication
    path('accounts/login/', LoginView.as_view(template_name='registration/login.html'), name='login'),
    path('accounts/logout/', LogoutView.as_view(next_page='login'), name='logout'),

    # Public home page, redirects to a dashboard once logged in
    path('', views.home, name='home'),

    # Apps
    path('books/', include('books.urls')),
    path('circulation/', include('circulation.urls')),
    path('members/', include('members.urls')),

    path('api/book-copies/search/', book_views.copy_search, name='api_copy_search'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
