from rest_framework import serializers

from clinic.queueing import ACTIONS, STATUSES


class JoinQueueSerializer(serializers.Serializer):
    departmentId = serializers.CharField(max_length=50)
    reason = serializers.CharField(max_length=2000, required=False, allow_blank=True)


class BoardQuerySerializer(serializers.Serializer):
    departmentId = serializers.CharField(max_length=50)


class QueueStatusUpdateSerializer(serializers.Serializer):
    """Staff move an entry either by ``action`` or by target ``status``."""
    id = serializers.IntegerField(min_value=1)
    action = serializers.ChoiceField(choices=sorted(ACTIONS), required=False)
    status = serializers.ChoiceField(choices=list(STATUSES), required=False)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def validate(self, attrs):
        if bool(attrs.get('action')) == bool(attrs.get('status')):
            raise serializers.ValidationError('exactly one of action or status is required')
        return attrs


class QueueEntryRefSerializer(serializers.Serializer):
    id = serializers.IntegerField(min_value=1)
