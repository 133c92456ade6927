from django.urls import path
from .views import (
    cart_list_create, cart_detail, cart_add_item, cart_item_detail,
    cart_hold, cart_unhold, cart_checkout,
    order_list, order_create_online, order_detail, order_confirm, order_cancel, order_payments,
)

urlpatterns = [
    # Cart endpoints
    path('carts/', cart_list_create, name='cart-list-create'),
    path('carts/<int:pk>/', cart_detail, name='cart-detail'),
    path('carts/<int:pk>/items/', cart_add_item, name='cart-add-item'),
    path('carts/<int:pk>/items/<int:item_id>/', cart_item_detail, name='cart-item-detail'),
    path('carts/<int:pk>/hold/', cart_hold, name='cart-hold'),
    path('carts/<int:pk>/unhold/', cart_unhold, name='cart-unhold'),
    path('carts/<int:pk>/checkout/', cart_checkout, name='cart-checkout'),

    # Order endpoints
    path('orders/', order_list, name='order-list'),
    path('orders/online/', order_create_online, name='order-create-online'),
    path('orders/<int:pk>/', order_detail, name='order-detail'),
    path('orders/<int:pk>/confirm/', order_confirm, name='order-confirm'),
    path('orders/<int:pk>/cancel/', order_cancel, name='order-cancel'),
    path('orders/<int:pk>/payments/', order_payments, name='order-payments'),
]
