# backoffice/urls.py
from django.urls import path
from django.contrib.auth import views as auth_views

from . import views

urlpatterns = [
    path('login/', auth_views.LoginView.as_view(template_name='admin/login.html'), name='login'),
    path('logout/', auth_views.LogoutView.as_view(next_page='login', http_method_names=['get', 'post']), name='logout'),

    # Rentals
    path("api/rentals/", views.rentals_collection, name="rentals_collection"),
    path("api/rentals/<int:pk>/", views.rental_detail, name="rental_detail"),
    path("api/rentals/<int:pk>/return/", views.rental_return, name="rental_return"),
    path("api/rentals/<int:pk>/late-fee/", views.rental_late_fee, name="rental_late_fee"),
    path("api/rentals/<int:pk>/receipt.png", views.rental_receipt, name="rental_receipt"),

    # Catalog & sales
    path("api/products/rentable/", views.rentable_products, name="rentable_products"),
    path("api/sales/", views.sales_collection, name="sales_collection"),
]
