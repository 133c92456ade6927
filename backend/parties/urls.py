from django.urls import path
from .views import (
    customer_list_create, customer_detail, customer_history,
    supplier_list_create, supplier_detail, supplier_products, supplier_product_unlink,
    supplier_history, supplier_summary_view,
    credit_list_create, credit_detail, credit_groups, credit_group_pay,
)

urlpatterns = [
    # Customer endpoints
    path('customers/', customer_list_create, name='customer-list-create'),
    path('customers/<int:pk>/', customer_detail, name='customer-detail'),
    path('customers/<int:pk>/history/', customer_history, name='customer-history'),

    # Supplier endpoints
    path('suppliers/', supplier_list_create, name='supplier-list-create'),
    path('suppliers/summary/', supplier_summary_view, name='supplier-summary'),
    path('suppliers/<int:pk>/', supplier_detail, name='supplier-detail'),
    path('suppliers/<int:pk>/products/', supplier_products, name='supplier-products'),
    path('suppliers/<int:pk>/products/<int:variant_id>/', supplier_product_unlink, name='supplier-product-unlink'),
    path('suppliers/<int:pk>/history/', supplier_history, name='supplier-history'),

    # Credit endpoints
    path('credits/', credit_list_create, name='credit-list-create'),
    path('credits/groups/', credit_groups, name='credit-groups'),
    path('credits/pay/', credit_group_pay, name='credit-group-pay'),
    path('credits/<int:pk>/', credit_detail, name='credit-detail'),
]
