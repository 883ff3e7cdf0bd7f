from django.urls import path

from . import views

urlpatterns = [
    path('', views.dashboard, name='dashboard'),

    # Catalog
    path('books/', views.manage_books, name='manage_books'),
    path('books/add/', views.add_book, name='add_book'),
    path('books/<int:book_id>/edit/', views.edit_book, name='edit_book'),
    path('books/<int:book_id>/delete/', views.delete_book, name='delete_book'),
    path('books/<int:book_id>/restock/', views.restock_book, name='restock_book'),

    # Borrow requests
    path('requests/borrow/', views.pending_borrow_requests, name='pending_borrow_requests'),
    path('requests/borrow/<int:request_id>/approve/', views.approve_borrow, name='approve_borrow'),
    path('requests/borrow/<int:request_id>/reject/', views.reject_borrow, name='reject_borrow'),

    # Return requests
    path('requests/return/', views.pending_return_requests, name='pending_return_requests'),
    path('requests/return/<int:request_id>/approve/', views.approve_return, name='approve_return'),
    path('requests/return/<int:request_id>/reject/', views.reject_return, name='reject_return'),

    # Penalties & history
    path('penalties/', views.penalty_management, name='penalty_management'),
    path('penalties/<int:request_id>/paid/', views.mark_penalty_paid, name='mark_penalty_paid'),
    path('history/', views.processed_history, name='processed_history'),

    # Users
    path('users/', views.users_list, name='users_list'),
    path('users/<int:user_id>/', views.user_detail, name='user_detail'),
    path('users/<int:user_id>/alert/', views.send_alert, name='send_alert'),
]
