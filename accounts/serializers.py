from rest_framework import serializers
from .models import User
from .services import check_handle_availability
from .utils import normalize_username, get_username_error_message


class UserSerializer(serializers.ModelSerializer):
    """
    Internal use only (e.g., connections). Includes the UUID `id` for app-internal relations.
    """
    class Meta:
        model = User
        fields = ("id", "username", "full_name", "avatar_url", "current_title", "affiliation")


class PublicUserSerializer(serializers.ModelSerializer):
    """
    Public-facing profile. Do NOT include email here.
    """
    class Meta:
        model = User
        fields = (
            "id",
            "username",
            "full_name",
            "bio",
            "avatar_url",
            "role",
            "current_title",
            "affiliation",
            "city",
            "country",
        )


class CommunityMemberSerializer(PublicUserSerializer):
    """
    Directory card: public profile plus the viewer-relative entanglement status.
    Expects an `entanglements` tracker in the serializer context.
    """
    entanglement_status = serializers.SerializerMethodField()

    class Meta(PublicUserSerializer.Meta):
        fields = PublicUserSerializer.Meta.fields + ("entanglement_status",)

    def get_entanglement_status(self, obj):
        tracker = self.context.get("entanglements")
        if tracker is None:
            return "none"
        return tracker.get_status(obj.pk).value


class MeSerializer(serializers.ModelSerializer):
    """
    Authenticated user's own profile. Username is immutable here.
    """
    class Meta:
        model = User
        fields = (
            "id",
            "username",
            "email",
            "full_name",
            "bio",
            "avatar_url",
            "role",
            "current_title",
            "affiliation",
            "city",
            "country",
        )
        read_only_fields = ("id", "username")


class RegisterSerializer(serializers.ModelSerializer):
    """
    Registration serializer. Applies model-level username policy before save().
    """
    password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ("id", "username", "full_name", "email", "password")
        read_only_fields = ("id",)
        extra_kwargs = {"username": {"validators": []}}

    def validate_username(self, value):
        ok, reason = check_handle_availability(value)
        if not ok:
            raise serializers.ValidationError(get_username_error_message(reason), code=reason)
        return normalize_username(value)

    def create(self, validated_data):
        password = validated_data.pop("password")
        user = User(**validated_data)
        user.set_password(password)
        user.save()
        return user
