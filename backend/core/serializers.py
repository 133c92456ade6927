from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from .models import User, Setting, AuditLog


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'phone', 'is_active', 'is_staff', 'is_superuser', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']


class UserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name', 'phone', 'is_staff']

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        user = User.objects.create(**validated_data, is_active=True)
        user.set_password(password)
        user.save()
        return user


class SettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = Setting
        fields = ['id', 'key', 'value', 'description', 'updated_at']


class StoreSettingsSerializer(serializers.Serializer):
    """Typed view over the store settings rows"""
    store_name = serializers.CharField(max_length=120)
    whatsapp_number = serializers.CharField(max_length=30, allow_blank=True)
    city = serializers.CharField(max_length=120, allow_blank=True)
    currency_code = serializers.CharField(max_length=3, min_length=3)
    show_currency_symbol = serializers.BooleanField()
    enable_low_stock_alerts = serializers.BooleanField()
    default_reorder_level_g = serializers.IntegerField(min_value=0)
    default_reorder_level_units = serializers.IntegerField(min_value=0)
    tiktok_pixel_id = serializers.CharField(max_length=100, allow_blank=True)
    google_ads_conversion_id = serializers.CharField(max_length=100, allow_blank=True)

    def validate_currency_code(self, value):
        return value.upper()

    def validate_whatsapp_number(self, value):
        return ''.join(ch for ch in value if ch.isdigit() or ch == '+')


class AuditLogSerializer(serializers.ModelSerializer):
    user = UserSerializer(read_only=True)

    class Meta:
        model = AuditLog
        fields = ['id', 'user', 'action', 'model_name', 'object_id', 'object_name',
                  'object_reference', 'changes', 'ip_address', 'created_at']
