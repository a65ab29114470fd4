from django.contrib import admin
from .models import Branch, StudentProfile, Venue, Event, Registration, RegistrationActivity


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ['name', 'short_code', 'created_at']


@admin.register(StudentProfile)
class StudentProfileAdmin(admin.ModelAdmin):
    list_display = ['user', 'student_id', 'full_name', 'branch', 'graduation_year']
    search_fields = ['student_id', 'full_name', 'user__email']


@admin.register(Venue)
class VenueAdmin(admin.ModelAdmin):
    list_display = ['name', 'location', 'capacity', 'is_active']


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ['name', 'venue', 'start_time', 'max_slots', 'status', 'is_published']
    list_filter = ['status', 'is_published', 'venue']


@admin.register(Registration)
class RegistrationAdmin(admin.ModelAdmin):
    list_display = ['event', 'user', 'status', 'registered_at']
    list_filter = ['status', 'event']


@admin.register(RegistrationActivity)
class RegistrationActivityAdmin(admin.ModelAdmin):
    list_display = ['registration', 'action', 'from_status', 'to_status', 'actor', 'timestamp']
    readonly_fields = ['timestamp']
