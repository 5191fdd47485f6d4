from django.urls import path
from . import views

app_name = 'circulation'

urlpatterns = [
    # Dashboards and reports
    path('my-loans/', views.my_loans, name='my_loans'),
    path('dashboard/', views.librarian_dashboard, name='librarian_dashboard'),
    path('overdue-report/', views.overdue_report, name='overdue_report'),

    # Loans
    path('loans/', views.loan_list, name='loan_list'),
    path('loans/create/', views.loan_create, name='loan_create'),
    path('loans/<int:loan_id>/', views.loan_detail, name='loan_detail'),
    path('loans/<int:loan_id>/return/', views.loan_return, name='loan_return'),
    path('loans/<int:loan_id>/renew/', views.loan_renew, name='loan_renew'),
    path('loans/<int:loan_id>/lost/', views.loan_mark_lost, name='loan_mark_lost'),
    path('loans/<int:loan_id>/fine/collect/', views.fine_collect, name='fine_collect'),
    path('loans/<int:loan_id>/fine/waive/', views.fine_waive, name='fine_waive'),

    # Reservations
    path('reservations/', views.reservation_list, name='reservation_list'),
    path('reservations/create/', views.reservation_create, name='reservation_create'),
    path('reservations/<int:reservation_id>/promote/', views.reservation_promote, name='reservation_promote'),
    path('reservations/<int:reservation_id>/checkout/', views.reservation_checkout, name='reservation_checkout'),
    path('reservations/<int:reservation_id>/fulfill/', views.reservation_fulfill, name='reservation_fulfill'),
    path('reservations/<int:reservation_id>/cancel/', views.reservation_cancel, name='reservation_cancel'),
    path('reservations/<int:reservation_id>/expire/', views.reservation_expire, name='reservation_expire'),
]
