from django.contrib.auth import get_user_model
from rest_framework import serializers

from accounts.serializers import UserSerializer
from common.serializers import DynamicFieldsModelSerializer
from .models import Connection
from .status import ConnectionStatus, other_participant, project_status

User = get_user_model()


class ConnectionSerializer(DynamicFieldsModelSerializer):
    """
    Read serializer for connection rows.

    Adds the viewer-relative `viewer_status` and the `other_user` card,
    both computed from the authenticated user in the request context.
    """
    requester = UserSerializer(read_only=True)
    target = UserSerializer(read_only=True)
    other_user = serializers.SerializerMethodField()
    viewer_status = serializers.SerializerMethodField()
    sent_by_viewer = serializers.SerializerMethodField()

    class Meta:
        model = Connection
        fields = [
            'id',
            'requester',
            'target',
            'other_user',
            'status',
            'viewer_status',
            'sent_by_viewer',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'status', 'created_at', 'updated_at']

    def _viewer_id(self):
        request = self.context.get('request')
        if request is None or not request.user.is_authenticated:
            return None
        return request.user.pk

    def get_other_user(self, obj):
        viewer_id = self._viewer_id()
        if viewer_id is None:
            return None
        if str(other_participant(obj, viewer_id)) == str(obj.requester_id):
            return UserSerializer(obj.requester, context=self.context).data
        return UserSerializer(obj.target, context=self.context).data

    def get_viewer_status(self, obj):
        return project_status(obj, self._viewer_id()).value

    def get_sent_by_viewer(self, obj):
        viewer_id = self._viewer_id()
        return viewer_id is not None and str(obj.requester_id) == str(viewer_id)


class EntanglementStatusSerializer(serializers.Serializer):
    """Viewer-relative status of one other member."""
    user_id = serializers.UUIDField()
    status = serializers.ChoiceField(choices=[s.value for s in ConnectionStatus])
    loading = serializers.BooleanField(default=False)
    connection_id = serializers.UUIDField(allow_null=True)

    @classmethod
    def from_tracker(cls, tracker, other_id):
        row = tracker.get_connection(other_id)
        return cls({
            'user_id': other_id,
            'status': tracker.get_status(other_id).value,
            'loading': tracker.is_loading(other_id),
            'connection_id': row.pk if row is not None else None,
        })


class CountSerializer(serializers.Serializer):
    count = serializers.IntegerField()
