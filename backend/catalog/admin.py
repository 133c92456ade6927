from django.contrib import admin
from .models import Category, Subcategory, SubSubCategory, Product, ProductVariant, ProductVariantImage


class SubcategoryInline(admin.TabularInline):
    model = Subcategory
    extra = 0
    fields = ['name', 'slug']


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'created_at']
    search_fields = ['name', 'slug']
    ordering = ['name']
    prepopulated_fields = {'slug': ('name',)}
    inlines = [SubcategoryInline]


@admin.register(Subcategory)
class SubcategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'slug']
    list_filter = ['category']
    search_fields = ['name', 'slug']
    ordering = ['category__name', 'name']


@admin.register(SubSubCategory)
class SubSubCategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'subcategory', 'slug']
    list_filter = ['subcategory__category']
    search_fields = ['name', 'slug', 'subcategory__name']
    ordering = ['subcategory__name', 'name']


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0
    fields = ['name', 'variant_type', 'pack_size_g', 'sell_price', 'sku', 'is_active']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'brand', 'subsubcategory', 'is_active', 'created_at']
    list_filter = ['is_active', 'subsubcategory__subcategory__category']
    search_fields = ['name', 'brand', 'description']
    ordering = ['name']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [ProductVariantInline]


class ProductVariantImageInline(admin.TabularInline):
    model = ProductVariantImage
    extra = 0


@admin.register(ProductVariant)
class ProductVariantAdmin(admin.ModelAdmin):
    list_display = ['product', 'name', 'variant_type', 'sell_price', 'sku', 'is_active']
    list_filter = ['is_active', 'variant_type']
    search_fields = ['name', 'sku', 'product__name']
    ordering = ['product__name', 'name']
    inlines = [ProductVariantImageInline]
