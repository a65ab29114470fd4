import logging

from django.db import DatabaseError, connection
from django.utils import timezone
from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, IsAdminUser, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView

from .exceptions import ErrorCode, ServerError, ValidationFailed
from .models import Branch, Venue, Registration
from .permissions import IsAdminOrReadOnly
from .serializers import (
    BranchSerializer,
    EventRegistrationSerializer,
    EventSerializer,
    EventWriteSerializer,
    RegistrationActivitySerializer,
    RegistrationSerializer,
    RegistrationStatusUpdateSerializer,
    UserSerializer,
    UsernameOrEmailTokenObtainPairSerializer,
    VenueSerializer,
)
from .services import accounts, events as event_service, registrations as registration_service
from .utils import is_admin
from .validators import validate_positive_integer, validate_profile_update, validate_signup

logger = logging.getLogger(__name__)


class UsernameOrEmailTokenObtainPairView(TokenObtainPairView):
    serializer_class = UsernameOrEmailTokenObtainPairSerializer


@api_view(['POST'])
@permission_classes([AllowAny])
def register_user(request):
    """
    Register a new student account with its profile.
    """
    validated = validate_signup(request.data)
    user = accounts.register_user(validated)
    return Response({
        'message': 'User registered successfully',
        'user': UserSerializer(user).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated])
def user_detail(request, user_id):
    if request.method == 'GET':
        user = accounts.get_user(user_id, request.user)
        return Response(UserSerializer(user).data)

    validated = validate_profile_update(request.data)
    user = accounts.update_user_profile(user_id, request.user, validated)
    return Response(UserSerializer(user).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def health_check(request):
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
    except DatabaseError as exc:
        logger.error(f"Health check failed: {exc}")
        raise ServerError(ErrorCode.DATABASE_ERROR, 'Database connection failed')
    return Response({
        'status': 'OK',
        'database': 'Connected',
        'timestamp': timezone.now().isoformat(),
    })


class NumericLookupMixin:
    """Reject non-numeric ids in the URL before any query runs."""

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        if self.lookup_field in kwargs:
            validate_positive_integer(kwargs[self.lookup_field], 'id')


class BranchViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Branch.objects.all()
    serializer_class = BranchSerializer
    permission_classes = [AllowAny]


class VenueViewSet(NumericLookupMixin, viewsets.ModelViewSet):
    queryset = Venue.objects.filter(is_active=True)
    serializer_class = VenueSerializer
    permission_classes = [IsAdminOrReadOnly]

    def perform_destroy(self, instance):
        """Soft delete: events keep pointing at the venue"""
        instance.is_active = False
        instance.save(update_fields=['is_active'])


class EventViewSet(NumericLookupMixin, viewsets.GenericViewSet):
    serializer_class = EventSerializer

    def get_permissions(self):
        if self.action in ['list', 'retrieve', 'register', 'cancel_registration']:
            return [IsAuthenticated()]
        return [IsAdminUser()]

    def _filters(self):
        params = self.request.query_params
        filters = {'status': params.get('status')}
        if params.get('is_published') in ('true', 'false'):
            filters['is_published'] = params.get('is_published') == 'true'
        if params.get('venue'):
            filters['venue'] = validate_positive_integer(params.get('venue'), 'venue')
        return filters

    def list(self, request):
        events = event_service.list_events(self._filters(), published_only=not is_admin(request.user))
        return Response(EventSerializer(events, many=True).data)

    def retrieve(self, request, pk=None):
        event = event_service.get_event(pk, published_only=not is_admin(request.user))
        return Response(EventSerializer(event).data)

    def create(self, request):
        serializer = EventWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        event = event_service.create_event(serializer.validated_data)
        return Response(EventSerializer(event).data, status=status.HTTP_201_CREATED)

    def update(self, request, pk=None):
        serializer = EventWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        event = event_service.update_event(pk, serializer.validated_data)
        return Response(EventSerializer(event).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk)

    def destroy(self, request, pk=None):
        event_service.delete_event(pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def publish(self, request, pk=None):
        event = event_service.publish_event(pk)
        return Response(EventSerializer(event).data)

    @action(detail=True, methods=['post'])
    def unpublish(self, request, pk=None):
        event = event_service.unpublish_event(pk)
        return Response(EventSerializer(event).data)

    @action(detail=True, methods=['get'])
    def registrations(self, request, pk=None):
        """All registrations of an event, oldest first (admin)"""
        queryset = registration_service.get_event_registrations(pk)
        status_param = request.query_params.get('status')
        if status_param:
            queryset = queryset.filter(status=status_param.upper())
        return Response(EventRegistrationSerializer(queryset, many=True).data)

    @registrations.mapping.post
    def register(self, request, pk=None):
        registration = registration_service.register(request.user, pk)
        return Response(RegistrationSerializer(registration).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['delete'], url_path=r'registrations/(?P<registration_id>\d+)')
    def cancel_registration(self, request, pk=None, registration_id=None):
        registration = registration_service.cancel(int(registration_id), request.user, event_id=pk)
        return Response(RegistrationSerializer(registration).data)

    @action(detail=True, methods=['get'], url_path='registrations/stats')
    def registration_stats(self, request, pk=None):
        return Response(registration_service.get_event_registration_stats(pk))


class RegistrationViewSet(NumericLookupMixin, mixins.ListModelMixin, viewsets.GenericViewSet):
    serializer_class = RegistrationSerializer
    permission_classes = [IsAuthenticated]

    def get_permissions(self):
        if self.action == 'update':
            return [IsAdminUser()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = Registration.objects.select_related('event', 'user')
        if not is_admin(self.request.user):
            return queryset.filter(user=self.request.user)

        event_id = self.request.query_params.get('event')
        if event_id:
            queryset = queryset.filter(event_id=validate_positive_integer(event_id, 'event'))
        status_param = self.request.query_params.get('status')
        if status_param:
            queryset = queryset.filter(status=status_param.upper())
        return queryset

    def retrieve(self, request, pk=None):
        registration = registration_service.get_registration_for(pk, request.user)
        return Response(RegistrationSerializer(registration).data)

    def update(self, request, pk=None):
        """Admin status change: body {"status": ..., "reason": ...}"""
        serializer = RegistrationStatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            raise ValidationFailed(ErrorCode.INVALID_STATUS, 'A status is required', serializer.errors)
        registration = registration_service.update_status(
            pk,
            serializer.validated_data['status'],
            request.user,
            reason=serializer.validated_data.get('reason'),
        )
        return Response(RegistrationSerializer(registration).data)

    @action(detail=True, methods=['get'])
    def history(self, request, pk=None):
        registration = registration_service.get_registration_for(pk, request.user)
        activities = registration.activities.select_related('actor')
        return Response(RegistrationActivitySerializer(activities, many=True).data)
