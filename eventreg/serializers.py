from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .models import Branch, StudentProfile, Venue, Event, Registration, RegistrationActivity

User = get_user_model()


class BranchSerializer(serializers.ModelSerializer):
    class Meta:
        model = Branch
        fields = ['id', 'name', 'short_code']


class StudentProfileSerializer(serializers.ModelSerializer):
    branch_name = serializers.SerializerMethodField()

    class Meta:
        model = StudentProfile
        fields = [
            'student_id', 'full_name', 'phone', 'branch', 'branch_name',
            'graduation_year', 'created_at', 'updated_at',
        ]

    def get_branch_name(self, obj):
        return obj.branch.name if obj.branch else None


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'is_active', 'date_joined']

    def to_representation(self, instance):
        representation = super().to_representation(instance)
        representation['is_admin'] = instance.is_staff
        profile_instance = getattr(instance, 'profile', None)
        representation['profile'] = StudentProfileSerializer(profile_instance).data if profile_instance else None
        return representation


class UsernameOrEmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Extends the default SimpleJWT serializer to accept either username or email.
    """

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        profile = getattr(user, 'profile', None)
        token['email'] = user.email
        token['is_admin'] = user.is_staff
        token['student_id'] = profile.student_id if profile else None
        return token

    def validate(self, attrs):
        identifier = attrs.get(self.username_field)
        if identifier:
            identifier = identifier.strip()
            user_lookup = (
                User.objects.filter(email__iexact=identifier).first()
                or User.objects.filter(username__iexact=identifier).first()
            )
            attrs[self.username_field] = user_lookup.get_username() if user_lookup else identifier

        data = super().validate(attrs)
        data['token_type'] = 'Bearer'
        data['user'] = UserSerializer(self.user).data
        return data


class VenueSerializer(serializers.ModelSerializer):
    class Meta:
        model = Venue
        fields = ['id', 'name', 'location', 'capacity', 'is_active', 'created_at']
        read_only_fields = ['is_active', 'created_at']

    def validate_capacity(self, value):
        if value < 1:
            raise serializers.ValidationError('Capacity must be a positive integer.')
        if self.instance is not None:
            largest = self.instance.events.order_by('-max_slots').values_list('max_slots', flat=True).first()
            if largest is not None and value < largest:
                raise serializers.ValidationError(
                    f'Capacity cannot drop below the max slots of an event held here ({largest}).'
                )
        return value


class EventSerializer(serializers.ModelSerializer):
    venue_name = serializers.CharField(source='venue.name', read_only=True)
    venue_location = serializers.CharField(source='venue.location', read_only=True)
    venue_capacity = serializers.IntegerField(source='venue.capacity', read_only=True)
    # Annotated by services.events.annotated_events
    current_registrations = serializers.IntegerField(read_only=True)
    waitlist_size = serializers.IntegerField(read_only=True)
    is_open_for_registration = serializers.ReadOnlyField()

    class Meta:
        model = Event
        fields = [
            'id', 'name', 'description', 'start_time', 'end_time', 'max_slots',
            'status', 'is_published', 'is_open_for_registration', 'registration_fee',
            'venue', 'venue_name', 'venue_location', 'venue_capacity',
            'current_registrations', 'waitlist_size', 'created_at', 'updated_at',
        ]


class EventWriteSerializer(serializers.Serializer):
    """Input for event create/update. Business rules live in the event service."""
    name = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True)
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    max_slots = serializers.IntegerField(min_value=1)
    registration_fee = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    venue_id = serializers.IntegerField(min_value=1)
    status = serializers.ChoiceField(choices=Event.STATUS_CHOICES, required=False)

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Event name cannot be blank.')
        return value


class RegistrationSerializer(serializers.ModelSerializer):
    user_id = serializers.IntegerField(source='user.id', read_only=True)
    event_id = serializers.IntegerField(source='event.id', read_only=True)
    event_name = serializers.CharField(source='event.name', read_only=True)

    class Meta:
        model = Registration
        fields = ['id', 'user_id', 'event_id', 'event_name', 'registered_at', 'status']
        read_only_fields = fields


class EventRegistrationSerializer(RegistrationSerializer):
    """Registration row as seen by an admin looking at an event's attendee list."""
    username = serializers.CharField(source='user.username', read_only=True)
    email = serializers.CharField(source='user.email', read_only=True)
    full_name = serializers.CharField(source='user.profile.full_name', read_only=True, default='')
    student_id = serializers.CharField(source='user.profile.student_id', read_only=True, default=None)
    phone = serializers.CharField(source='user.profile.phone', read_only=True, default='')

    class Meta(RegistrationSerializer.Meta):
        fields = RegistrationSerializer.Meta.fields + ['username', 'email', 'full_name', 'student_id', 'phone']
        read_only_fields = fields


class RegistrationStatusUpdateSerializer(serializers.Serializer):
    # Membership of the status set is checked by the engine
    status = serializers.CharField()
    reason = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class RegistrationActivitySerializer(serializers.ModelSerializer):
    actor_name = serializers.CharField(source='actor.username', read_only=True, default=None)

    class Meta:
        model = RegistrationActivity
        fields = ['id', 'action', 'from_status', 'to_status', 'reason', 'actor', 'actor_name', 'timestamp']
