from django.urls import path
from . import views

app_name = 'members'

urlpatterns = [
    # Members
    path('', views.member_list, name='member_list'),
    path('create/', views.member_create, name='member_create'),
    path('<int:member_id>/', views.member_detail, name='member_detail'),
    path('<int:member_id>/edit/', views.member_update, name='member_update'),
    path('<int:member_id>/delete/', views.member_delete, name='member_delete'),

    # Staff
    path('staff/', views.staff_list, name='staff_list'),
    path('staff/create/', views.staff_create, name='staff_create'),
    path('staff/<int:staff_id>/', views.staff_detail, name='staff_detail'),
    path('staff/<int:staff_id>/edit/', views.staff_update, name='staff_update'),
    path('staff/<int:staff_id>/delete/', views.staff_delete, name='staff_delete'),
]
