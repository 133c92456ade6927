from decimal import Decimal
from rest_framework import serializers
from .models import Category, Subcategory, SubSubCategory, Product, ProductVariant, ProductVariantImage
from .utils import unique_slug, parse_tags


class SlugFromNameMixin:
    """Fill in (or de-duplicate) the slug from the name on create/update"""
    slug_scope_field = None

    def _slug_scope(self, validated_data):
        if not self.slug_scope_field:
            return {}
        parent = validated_data.get(self.slug_scope_field)
        if parent is None and self.instance is not None:
            parent = getattr(self.instance, self.slug_scope_field)
        return {self.slug_scope_field: parent}

    def _apply_slug(self, validated_data):
        requested = validated_data.get('slug')
        if requested:
            source = requested
        elif self.instance is not None and 'name' not in validated_data:
            return validated_data
        else:
            source = validated_data.get('name') or getattr(self.instance, 'name', '')
        validated_data['slug'] = unique_slug(
            self.Meta.model, source, instance=self.instance, **self._slug_scope(validated_data)
        )
        return validated_data

    def create(self, validated_data):
        return super().create(self._apply_slug(validated_data))

    def update(self, instance, validated_data):
        return super().update(instance, self._apply_slug(validated_data))


class CategorySerializer(SlugFromNameMixin, serializers.ModelSerializer):
    slug = serializers.CharField(max_length=220, required=False, allow_blank=True)
    subcategories_count = serializers.IntegerField(source='subcategories.count', read_only=True)

    class Meta:
        model = Category
        fields = ['id', 'name', 'slug', 'subcategories_count', 'created_at', 'updated_at']


class SubcategorySerializer(SlugFromNameMixin, serializers.ModelSerializer):
    slug_scope_field = 'category'
    slug = serializers.CharField(max_length=220, required=False, allow_blank=True)
    category_name = serializers.CharField(source='category.name', read_only=True)

    class Meta:
        model = Subcategory
        fields = ['id', 'category', 'category_name', 'name', 'slug', 'created_at', 'updated_at']
        validators = []


class SubSubCategorySerializer(SlugFromNameMixin, serializers.ModelSerializer):
    slug_scope_field = 'subcategory'
    slug = serializers.CharField(max_length=220, required=False, allow_blank=True)
    subcategory_name = serializers.CharField(source='subcategory.name', read_only=True)
    category = serializers.IntegerField(source='subcategory.category_id', read_only=True)

    class Meta:
        model = SubSubCategory
        fields = ['id', 'subcategory', 'subcategory_name', 'category', 'name', 'slug', 'created_at', 'updated_at']
        validators = []


class TagsField(serializers.Field):
    """Accepts "a, b, A" or ["a", "b"] and stores a de-duplicated list"""

    def to_internal_value(self, data):
        if not isinstance(data, (str, list, tuple)):
            raise serializers.ValidationError('Tags must be a comma-separated string or a list.')
        return parse_tags(data)

    def to_representation(self, value):
        return list(value or [])


class ProductVariantImageSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductVariantImage
        fields = ['id', 'variant', 'url', 'is_primary', 'sort_order', 'created_at']

    def save(self, **kwargs):
        image = super().save(**kwargs)
        if image.is_primary:
            ProductVariantImage.objects.filter(variant=image.variant).exclude(pk=image.pk).update(is_primary=False)
        return image


class ProductVariantSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    brand = serializers.CharField(source='product.brand', read_only=True)
    sku = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    qty_g = serializers.SerializerMethodField()
    qty_units = serializers.SerializerMethodField()
    is_low_stock = serializers.SerializerMethodField()
    primary_image = serializers.SerializerMethodField()

    class Meta:
        model = ProductVariant
        fields = ['id', 'product', 'product_name', 'brand', 'name', 'variant_type', 'pack_size_g',
                  'sell_price', 'sku', 'is_active', 'qty_g', 'qty_units', 'is_low_stock',
                  'primary_image', 'created_at', 'updated_at']

    def _inventory(self, obj):
        return getattr(obj, 'inventory', None)

    def get_qty_g(self, obj):
        inventory = self._inventory(obj)
        return inventory.qty_g if inventory else 0

    def get_qty_units(self, obj):
        inventory = self._inventory(obj)
        return inventory.qty_units if inventory else 0

    def get_is_low_stock(self, obj):
        inventory = self._inventory(obj)
        return inventory.is_low_stock if inventory else False

    def get_primary_image(self, obj):
        images = list(obj.images.all())
        return images[0].url if images else None

    def validate_sku(self, value):
        value = (value or '').strip()
        if not value:
            return None
        queryset = ProductVariant.objects.filter(sku=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A variant with this SKU already exists.')
        return value

    def validate_sell_price(self, value):
        if value < Decimal('0'):
            raise serializers.ValidationError('Sell price cannot be negative.')
        return value

    def validate(self, attrs):
        variant_type = attrs.get('variant_type', getattr(self.instance, 'variant_type', 'unit'))
        pack_size_g = attrs.get('pack_size_g', getattr(self.instance, 'pack_size_g', None))
        if variant_type == 'unit':
            attrs['pack_size_g'] = None
        elif pack_size_g is not None and pack_size_g <= 0:
            raise serializers.ValidationError({'pack_size_g': 'Pack size must be greater than 0 grams.'})
        return attrs


class ProductSerializer(SlugFromNameMixin, serializers.ModelSerializer):
    slug = serializers.CharField(max_length=220, required=False, allow_blank=True)
    tags = TagsField(required=False)
    variants = ProductVariantSerializer(many=True, read_only=True)
    subsubcategory_name = serializers.CharField(source='subsubcategory.name', read_only=True)
    subcategory = serializers.IntegerField(source='subsubcategory.subcategory_id', read_only=True)
    category = serializers.IntegerField(source='subsubcategory.subcategory.category_id', read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'subsubcategory', 'subsubcategory_name', 'subcategory', 'category',
                  'name', 'slug', 'description', 'tags', 'brand', 'is_active', 'variants',
                  'created_at', 'updated_at']

    def validate_brand(self, value):
        value = (value or '').strip()
        return value or None


class ProductListSerializer(serializers.ModelSerializer):
    """Lightweight product row for list endpoints"""
    subsubcategory_name = serializers.CharField(source='subsubcategory.name', read_only=True)
    variants_count = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = ['id', 'name', 'slug', 'brand', 'tags', 'is_active', 'subsubcategory',
                  'subsubcategory_name', 'variants_count', 'updated_at']

    def get_variants_count(self, obj):
        return len(obj.variants.all())


def build_category_tree(categories):
    """Nest prefetched categories -> subcategories -> sub-subcategories"""
    tree = []
    for category in categories:
        tree.append({
            'id': category.id,
            'name': category.name,
            'slug': category.slug,
            'subcategories': [
                {
                    'id': sub.id,
                    'name': sub.name,
                    'slug': sub.slug,
                    'subsubcategories': [
                        {'id': leaf.id, 'name': leaf.name, 'slug': leaf.slug}
                        for leaf in sub.subsubcategories.all()
                    ],
                }
                for sub in category.subcategories.all()
            ],
        })
    return tree
