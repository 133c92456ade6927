from django.urls import path
from .views import (
    category_list_create, category_detail, category_tree,
    subcategory_list_create, subcategory_detail,
    subsubcategory_list_create, subsubcategory_detail,
    product_list_create, product_detail,
    product_variant_list_create, product_variant_detail, variant_search,
    variant_images, variant_image_detail,
)

urlpatterns = [
    # Category tree
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/tree/', category_tree, name='category-tree'),
    path('categories/<int:pk>/', category_detail, name='category-detail'),
    path('subcategories/', subcategory_list_create, name='subcategory-list-create'),
    path('subcategories/<int:pk>/', subcategory_detail, name='subcategory-detail'),
    path('subsubcategories/', subsubcategory_list_create, name='subsubcategory-list-create'),
    path('subsubcategories/<int:pk>/', subsubcategory_detail, name='subsubcategory-detail'),

    # Products
    path('products/', product_list_create, name='product-list-create'),
    path('products/<int:pk>/', product_detail, name='product-detail'),

    # Variants
    path('variants/', product_variant_list_create, name='variant-list-create'),
    path('variants/search/', variant_search, name='variant-search'),
    path('variants/<int:pk>/', product_variant_detail, name='variant-detail'),
    path('variants/<int:pk>/images/', variant_images, name='variant-images'),
    path('variant-images/<int:pk>/', variant_image_detail, name='variant-image-detail'),
]
