from django.contrib.auth import get_user_model
from rest_framework import serializers

from apps.users.models import Team

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    name = serializers.ReadOnlyField()
    team_name = serializers.CharField(source="team.name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "username", "email", "name", "display_name", "role", "team", "team_name"]


class UserCreateSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ["id", "username", "email", "first_name", "last_name", "display_name", "role", "team"]

    def create(self, validated_data):
        user = User(**validated_data)
        user.set_unusable_password()
        user.save()
        return user


class TeamSerializer(serializers.ModelSerializer):
    members = UserSerializer(many=True, read_only=True)
    member_count = serializers.ReadOnlyField()
    is_member = serializers.SerializerMethodField()

    class Meta:
        model = Team
        fields = ["id", "name", "description", "members", "member_count", "created_at", "is_member"]
        read_only_fields = ["created_at"]

    def get_is_member(self, obj):
        request = self.context.get("request")
        if request and request.user.is_authenticated:
            return obj.is_member(request.user)
        return False


class TeamCreateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Team
        fields = ["id", "name", "description"]

    def validate_name(self, value):
        if Team.objects.filter(name__iexact=value.strip()).exists():
            raise serializers.ValidationError("A team with this name already exists.")
        return value.strip()
