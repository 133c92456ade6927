from django.urls import path
from .views import (
    inventory_list, inventory_low_stock, inventory_detail,
    movement_list_create, movement_detail,
)

urlpatterns = [
    # Inventory endpoints
    path('inventory/', inventory_list, name='inventory-list'),
    path('inventory/low-stock/', inventory_low_stock, name='inventory-low-stock'),
    path('inventory/<int:variant_id>/', inventory_detail, name='inventory-detail'),

    # Movement endpoints
    path('inventory-movements/', movement_list_create, name='movement-list-create'),
    path('inventory-movements/<int:pk>/', movement_detail, name='movement-detail'),
]
