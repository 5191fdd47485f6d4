from django.urls import path
from . import views

app_name = 'books'

urlpatterns = [
    path('', views.book_list, name='book_list'),
    path('create/', views.book_create, name='book_create'),
    path('<int:book_id>/', views.book_detail, name='book_detail'),
    path('<int:book_id>/edit/', views.book_update, name='book_update'),
    path('<int:book_id>/delete/', views.book_delete, name='book_delete'),

    # Copies
    path('<int:book_id>/copies/', views.copy_create, name='copy_create'),
    path('<int:book_id>/copies/<int:copy_id>/edit/', views.copy_update, name='copy_update'),
    path('<int:book_id>/copies/<int:copy_id>/delete/', views.copy_delete, name='copy_delete'),
    path('scan/<str:barcode>/', views.scan_barcode, name='scan_barcode'),

    # Categories, genres, publishers
    path('<str:kind>/', views.reference_list, name='reference_list'),
    path('<str:kind>/create/', views.reference_create, name='reference_create'),
    path('<str:kind>/<int:item_id>/edit/', views.reference_update, name='reference_update'),
    path('<str:kind>/<int:item_id>/delete/', views.reference_delete, name='reference_delete'),
]
