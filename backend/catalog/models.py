from django.db import models
from decimal import Decimal


class Category(models.Model):
    """Top-level product categories"""
    name = models.CharField(max_length=200, db_index=True)
    slug = models.SlugField(max_length=220, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['name']


class Subcategory(models.Model):
    """Second level of the category tree"""
    category = models.ForeignKey(Category, on_delete=models.CASCADE, related_name='subcategories')
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=220)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.category.name} / {self.name}"

    class Meta:
        db_table = 'subcategories'
        verbose_name_plural = 'subcategories'
        ordering = ['name']
        unique_together = [['category', 'slug']]


class SubSubCategory(models.Model):
    """Third (leaf) level of the category tree; products hang off this"""
    subcategory = models.ForeignKey(Subcategory, on_delete=models.CASCADE, related_name='subsubcategories')
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=220)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.subcategory} / {self.name}"

    class Meta:
        db_table = 'subsubcategories'
        verbose_name_plural = 'sub-subcategories'
        ordering = ['name']
        unique_together = [['subcategory', 'slug']]


class Product(models.Model):
    """Product master"""
    subsubcategory = models.ForeignKey(SubSubCategory, on_delete=models.CASCADE, related_name='products')
    name = models.CharField(max_length=200, db_index=True)
    slug = models.SlugField(max_length=220, unique=True)
    description = models.TextField(blank=True)
    tags = models.JSONField(default=list, blank=True)
    brand = models.CharField(max_length=120, blank=True, null=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'products'
        ordering = ['name']


class ProductVariant(models.Model):
    """Sellable variant of a product, sold by weight (price per kg) or by unit"""
    VARIANT_TYPE_CHOICES = [
        ('weight', 'Weight'),
        ('unit', 'Unit'),
    ]

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='variants')
    name = models.CharField(max_length=200)  # e.g., "1 kg bag", "Single"
    variant_type = models.CharField(max_length=10, choices=VARIANT_TYPE_CHOICES, default='unit')
    pack_size_g = models.PositiveIntegerField(null=True, blank=True)
    sell_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    sku = models.CharField(max_length=100, unique=True, blank=True, null=True, db_index=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product.name} - {self.name}"

    @property
    def is_weight(self):
        return self.variant_type == 'weight'

    @property
    def display_name(self):
        return f"{self.product.name} - {self.name}"

    class Meta:
        db_table = 'product_variants'
        ordering = ['product__name', 'name']


class ProductVariantImage(models.Model):
    """Images attached to a variant"""
    variant = models.ForeignKey(ProductVariant, on_delete=models.CASCADE, related_name='images')
    url = models.URLField(max_length=500)
    is_primary = models.BooleanField(default=False)
    sort_order = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Image {self.pk} for {self.variant_id}"

    class Meta:
        db_table = 'product_variant_images'
        ordering = ['-is_primary', 'sort_order', 'id']
