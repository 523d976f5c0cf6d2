from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    u_id = serializers.UUIDField(source='id', read_only=True)
    display_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'u_id', 'username', 'email', 'first_name', 'last_name', 'display_name', 'role', 'date_joined']
        read_only_fields = ['id', 'u_id', 'role', 'date_joined']


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)
    u_id = serializers.UUIDField(source='id', read_only=True)
    role = serializers.ChoiceField(choices=['DOCTOR', 'MOTHER'], default='MOTHER')

    class Meta:
        model = User
        fields = ['u_id', 'username', 'password', 'email', 'first_name', 'last_name', 'role']
        read_only_fields = ['u_id']

    def validate_password(self, value):
        validate_password(value)
        return value

    def create(self, validated_data):
        # ADMIN is never self-assigned
        return User.objects.create_user(**validated_data)
