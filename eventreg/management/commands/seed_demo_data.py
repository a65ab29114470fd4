from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from eventreg.models import Branch, Venue, Event
from eventreg.services import registrations as registration_service
from eventreg.utils import get_user_profile

User = get_user_model()

DEMO_PASSWORD = "Demo@1234"


class Command(BaseCommand):
    help = "Seeds demo branches, venues, users, events and registrations for local testing."

    def add_arguments(self, parser):
        parser.add_argument(
            "--students",
            type=int,
            default=8,
            help="Number of demo students to create (default: 8)",
        )

    def handle(self, *args, **options):
        self.stdout.write(self.style.NOTICE("Starting demo data seeding..."))
        with transaction.atomic():
            branches = self._seed_branches()
            venues = self._seed_venues()
            self._seed_admin()
            students = self._seed_students(branches, options["students"])
            events = self._seed_events(venues)
        # Registrations go through the engine, which opens its own transactions
        self._seed_registrations(events, students)
        self.stdout.write(self.style.SUCCESS("Demo data seeded successfully."))

    def _seed_branches(self):
        branches = []
        for name, short_code in [
            ("Computer Science", "CSE"),
            ("Electronics and Communication", "ECE"),
            ("Mechanical Engineering", "ME"),
            ("Civil Engineering", "CE"),
        ]:
            branch, _ = Branch.objects.get_or_create(short_code=short_code, defaults={"name": name})
            branches.append(branch)
        return branches

    def _seed_venues(self):
        venues = {}
        for name, location, capacity in [
            ("Main Auditorium", "Admin Block", 400),
            ("Seminar Hall", "Library Building, 2nd floor", 120),
            ("Innovation Lab", "CSE Block", 5),
        ]:
            venue, _ = Venue.objects.get_or_create(
                name=name,
                defaults={"location": location, "capacity": capacity, "is_active": True},
            )
            venues[name] = venue
        return venues

    def _seed_admin(self):
        admin_user, created = User.objects.get_or_create(
            username="admin",
            defaults={
                "email": "admin@example.com",
                "is_staff": True,
                "is_superuser": True,
            },
        )
        if created:
            admin_user.set_password(DEMO_PASSWORD)
            admin_user.save()
        profile = get_user_profile(admin_user, create_if_missing=True)
        profile.full_name = "System Admin"
        profile.save()
        return admin_user

    def _seed_students(self, branches, count):
        students = []
        for index in range(1, count + 1):
            username = f"student{index}"
            user, created = User.objects.get_or_create(
                username=username,
                defaults={"email": f"{username}@example.com"},
            )
            if created:
                user.set_password(DEMO_PASSWORD)
                user.save()
                profile = get_user_profile(user, create_if_missing=True)
                profile.student_id = f"STU{index:04d}"
                profile.full_name = f"Demo Student {index}"
                profile.phone = f"+9198765{index:05d}"
                profile.branch = branches[index % len(branches)]
                profile.graduation_year = 2026 + index % 3
                profile.save()
            students.append(user)
        return students

    def _seed_events(self, venues):
        now = timezone.now()
        events_seed = [
            {
                "name": "Intra-College Hackathon",
                "description": "24-hour hackathon. Small room, so expect a waitlist.",
                "days_from_now": 10,
                "venue": "Innovation Lab",
                "max_slots": 3,
                "is_published": True,
            },
            {
                "name": "Annual Tech Talk",
                "description": "Alumni talk on building products at scale.",
                "days_from_now": 20,
                "venue": "Seminar Hall",
                "max_slots": 100,
                "is_published": True,
            },
            {
                "name": "Cultural Night",
                "description": "Music, dance and food stalls. Not announced yet.",
                "days_from_now": 30,
                "venue": "Main Auditorium",
                "max_slots": 350,
                "is_published": False,
            },
        ]
        events = []
        for data in events_seed:
            start = now + timedelta(days=data["days_from_now"])
            event, _ = Event.objects.get_or_create(
                name=data["name"],
                defaults={
                    "description": data["description"],
                    "start_time": start,
                    "end_time": start + timedelta(hours=4),
                    "venue": venues[data["venue"]],
                    "max_slots": data["max_slots"],
                    "status": Event.STATUS_ACTIVE,
                    "is_published": data["is_published"],
                },
            )
            events.append(event)
        return events

    def _seed_registrations(self, events, students):
        for event in events:
            if not event.is_open_for_registration or event.registrations.exists():
                continue
            for student in students:
                registration_service.register(student, event.pk)
            self.stdout.write(
                f"  {event.name}: {event.confirmed_count} confirmed, {event.waitlisted_count} waitlisted"
            )
