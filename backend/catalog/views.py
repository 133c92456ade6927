import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import ProtectedError
from django.shortcuts import get_object_or_404
from .models import Category, Subcategory, SubSubCategory, Product, ProductVariant, ProductVariantImage
from .serializers import (
    CategorySerializer, SubcategorySerializer, SubSubCategorySerializer,
    ProductSerializer, ProductListSerializer, ProductVariantSerializer,
    ProductVariantImageSerializer, build_category_tree
)
from .filters import ProductFilter, VariantFilter
from backend.core.utils import create_audit_log
from backend.inventory.services import ensure_inventory

logger = logging.getLogger('backend.catalog')

HISTORY_DELETE_ERROR = 'Cannot delete: variants have order or stock movement history. Deactivate them instead.'


def _detail(request, instance, serializer_class, audit_name=None):
    """Shared GET/PUT/PATCH/DELETE handling for simple catalogue rows"""
    if request.method == 'GET':
        return Response(serializer_class(instance).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = serializer_class(instance, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        object_id = str(instance.pk)
        object_name = str(instance)
        try:
            instance.delete()
        except ProtectedError:
            return Response({'error': HISTORY_DELETE_ERROR}, status=status.HTTP_400_BAD_REQUEST)
        if audit_name:
            create_audit_log(
                request=request,
                action='delete',
                model_name=audit_name,
                object_id=object_id,
                object_name=object_name,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def category_list_create(request):
    """List all categories or create a new category"""
    if request.method == 'GET':
        categories = Category.objects.all()
        serializer = CategorySerializer(categories, many=True)
        return Response(serializer.data)
    else:
        serializer = CategorySerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def category_detail(request, pk):
    """Retrieve, update or delete a category (deletes its whole subtree)"""
    category = get_object_or_404(Category, pk=pk)
    return _detail(request, category, CategorySerializer, audit_name='Category')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def category_tree(request):
    """Categories with nested subcategories and sub-subcategories"""
    categories = Category.objects.prefetch_related('subcategories__subsubcategories').all()
    return Response(build_category_tree(categories))


# Subcategory views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def subcategory_list_create(request):
    """List subcategories (optionally of one category) or create one"""
    if request.method == 'GET':
        subcategories = Subcategory.objects.select_related('category').all()
        category_id = request.query_params.get('category')
        if category_id:
            subcategories = subcategories.filter(category_id=category_id)
        serializer = SubcategorySerializer(subcategories, many=True)
        return Response(serializer.data)
    else:
        serializer = SubcategorySerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def subcategory_detail(request, pk):
    subcategory = get_object_or_404(Subcategory, pk=pk)
    return _detail(request, subcategory, SubcategorySerializer, audit_name='Subcategory')


# Sub-subcategory views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def subsubcategory_list_create(request):
    """List sub-subcategories (optionally of one subcategory) or create one"""
    if request.method == 'GET':
        leaves = SubSubCategory.objects.select_related('subcategory').all()
        subcategory_id = request.query_params.get('subcategory')
        if subcategory_id:
            leaves = leaves.filter(subcategory_id=subcategory_id)
        serializer = SubSubCategorySerializer(leaves, many=True)
        return Response(serializer.data)
    else:
        serializer = SubSubCategorySerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def subsubcategory_detail(request, pk):
    leaf = get_object_or_404(SubSubCategory, pk=pk)
    return _detail(request, leaf, SubSubCategorySerializer, audit_name='SubSubCategory')


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """List all products or create a new product"""
    if request.method == 'GET':
        queryset = Product.objects.select_related('subsubcategory').prefetch_related('variants').all()

        filterset = ProductFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        queryset = filterset.qs.order_by('name')

        serializer = ProductListSerializer(queryset, many=True)
        return Response(serializer.data)
    else:
        serializer = ProductSerializer(data=request.data)
        if serializer.is_valid():
            product = serializer.save()
            create_audit_log(
                request=request,
                action='create',
                model_name='Product',
                object_id=str(product.id),
                object_name=product.name,
                object_reference=product.slug,
            )
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(
        Product.objects.select_related('subsubcategory__subcategory').prefetch_related(
            'variants__images', 'variants__inventory'
        ),
        pk=pk
    )

    if request.method in ('PUT', 'PATCH'):
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            old_data = {'name': product.name, 'brand': product.brand, 'is_active': product.is_active}
            serializer.save()
            new_data = {'name': product.name, 'brand': product.brand, 'is_active': product.is_active}
            changes = {k: {'old': old_data.get(k), 'new': new_data.get(k)} for k in old_data if old_data.get(k) != new_data.get(k)}
            if changes:
                create_audit_log(
                    request=request,
                    action='update',
                    model_name='Product',
                    object_id=str(product.id),
                    object_name=product.name,
                    object_reference=product.slug,
                    changes=changes
                )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    return _detail(request, product, ProductSerializer, audit_name='Product')


# Variant views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_variant_list_create(request):
    """List variants (filterable) or create a new variant"""
    if request.method == 'GET':
        queryset = ProductVariant.objects.select_related('product', 'inventory').prefetch_related('images').all()
        filterset = VariantFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        serializer = ProductVariantSerializer(filterset.qs, many=True)
        return Response(serializer.data)
    else:
        serializer = ProductVariantSerializer(data=request.data)
        if serializer.is_valid():
            variant = serializer.save()
            ensure_inventory(variant)
            create_audit_log(
                request=request,
                action='create',
                model_name='ProductVariant',
                object_id=str(variant.id),
                object_name=variant.display_name,
                object_reference=variant.sku,
            )
            return Response(ProductVariantSerializer(variant).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_variant_detail(request, pk):
    """Retrieve, update or delete a product variant"""
    variant = get_object_or_404(ProductVariant.objects.select_related('product'), pk=pk)

    if request.method in ('PUT', 'PATCH'):
        serializer = ProductVariantSerializer(variant, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            old_price = variant.sell_price
            serializer.save()
            if old_price != variant.sell_price:
                create_audit_log(
                    request=request,
                    action='update',
                    model_name='ProductVariant',
                    object_id=str(variant.id),
                    object_name=variant.display_name,
                    object_reference=variant.sku,
                    changes={'sell_price': {'old': str(old_price), 'new': str(variant.sell_price)}}
                )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    return _detail(request, variant, ProductVariantSerializer, audit_name='ProductVariant')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def variant_search(request):
    """POS lookup: active variants of active products with price and stock"""
    query = request.query_params.get('q', '').strip()
    try:
        limit = min(int(request.query_params.get('limit', 30)), 100)
    except ValueError:
        limit = 30

    queryset = ProductVariant.objects.select_related('product', 'inventory').prefetch_related('images').filter(
        is_active=True,
        product__is_active=True,
    )
    filterset = VariantFilter({'q': query}, queryset=queryset)
    variants = filterset.qs.order_by('product__name', 'name')[:limit]
    return Response(ProductVariantSerializer(variants, many=True).data)


# Variant image views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def variant_images(request, pk):
    """List or add images for a variant"""
    variant = get_object_or_404(ProductVariant, pk=pk)

    if request.method == 'GET':
        serializer = ProductVariantImageSerializer(variant.images.all(), many=True)
        return Response(serializer.data)
    else:
        data = request.data.copy()
        data['variant'] = variant.id
        if not variant.images.exists() and 'is_primary' not in request.data:
            data['is_primary'] = True
        serializer = ProductVariantImageSerializer(data=data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def variant_image_detail(request, pk):
    image = get_object_or_404(ProductVariantImage, pk=pk)
    return _detail(request, image, ProductVariantImageSerializer)
