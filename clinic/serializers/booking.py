from rest_framework import serializers

from clinic.models import Appointment


class ScheduleUpsertSerializer(serializers.Serializer):
    dayOfWeek = serializers.IntegerField(min_value=0, max_value=6)
    startTime = serializers.CharField(max_length=8)
    endTime = serializers.CharField(max_length=8)
    slotDurationMinutes = serializers.IntegerField(min_value=5, max_value=480, required=False)
    isActive = serializers.BooleanField(required=False, default=True)


class ScheduleDeactivateSerializer(serializers.Serializer):
    dayOfWeek = serializers.IntegerField(min_value=0, max_value=6)


class TimeOffSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)


class SlotQuerySerializer(serializers.Serializer):
    date = serializers.CharField(max_length=10)


class BookAppointmentSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1)
    date = serializers.CharField(max_length=10)
    startTime = serializers.CharField(max_length=8)
    reason = serializers.CharField(max_length=2000, required=False, allow_blank=True)


class AppointmentListQuerySerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1, required=False)
    patientId = serializers.IntegerField(min_value=1, required=False)
    date = serializers.DateField(required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in Appointment.STATUS_CHOICES], required=False)


class AppointmentUpdateSerializer(serializers.Serializer):
    id = serializers.IntegerField(min_value=1)
    status = serializers.ChoiceField(choices=[c for c, _ in Appointment.STATUS_CHOICES], required=False)
    notes = serializers.CharField(max_length=5000, required=False, allow_blank=True)

    def validate(self, attrs):
        if 'status' not in attrs and 'notes' not in attrs:
            raise serializers.ValidationError('nothing to update')
        return attrs
