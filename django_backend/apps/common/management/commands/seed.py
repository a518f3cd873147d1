import random
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from apps.tasks.models import (
    ApprovalRequest,
    ApprovalStatus,
    Task,
    TaskPriority,
    TaskStatus,
)
from apps.users.models import Team, UserRole

User = get_user_model()

FIRST_NAMES = [
    'Alice', 'Bob', 'Charlie', 'Diana', 'Eve', 'Frank', 'Grace', 'Henry',
    'Ivy', 'Jack', 'Kate', 'Liam', 'Mia', 'Noah', 'Olivia', 'Peter',
]

LAST_NAMES = [
    'Smith', 'Johnson', 'Williams', 'Brown', 'Jones', 'Garcia', 'Miller',
    'Davis', 'Wilson', 'Anderson', 'Thomas', 'Moore',
]

TEAMS = {
    'Platform': 'Backend services, APIs and infrastructure',
    'Web': 'Customer facing frontend and design system',
    'Data': 'Pipelines, reporting and machine learning',
}

TASK_TITLES = [
    'Implement user authentication API endpoint',
    'Fix responsive layout of the dashboard component',
    'Migrate reporting schema to postgres',
    'Set up docker deployment pipeline',
    'Write integration test suite for checkout',
    'Build recommendation algorithm prototype',
    'Update documentation for the public api',
    'Optimize slow database query on orders',
    'Urgent hotfix: production login broken',
    'Add oauth login to mobile app',
    'Refactor server error handling',
    'Cleanup unused css and polish ui',
]


class Command(BaseCommand):
    help = 'Seed the database with teams, users with roles and tasks'

    def add_arguments(self, parser):
        parser.add_argument(
            '--members',
            type=int,
            default=4,
            help='Number of team members to create per team'
        )
        parser.add_argument(
            '--tasks',
            type=int,
            default=30,
            help='Number of tasks to create'
        )
        parser.add_argument(
            '--seed',
            type=int,
            default=None,
            help='Random seed for reproducible data'
        )

    def handle(self, *args, **options):
        if options['seed'] is not None:
            random.seed(options['seed'])

        self.stdout.write('Starting database seeding...')
        with transaction.atomic():
            admin = self.create_admin()
            teams = self.create_teams(options['members'])
            tasks = self.create_tasks(admin, teams, options['tasks'])

        members = User.objects.filter(team__isnull=False).count()
        self.stdout.write(
            self.style.SUCCESS(
                f'\nSeed data created successfully!\n'
                f'Teams: {len(teams)}\n'
                f'Team users: {members}\n'
                f'Tasks: {len(tasks)}\n\n'
                f'Admin actor id: {admin.id}\n'
                f'Send it as the X-Actor-Id header to call the API.'
            )
        )

    def create_admin(self):
        admin, created = User.objects.get_or_create(
            username='admin',
            defaults={
                'email': 'admin@example.com',
                'display_name': 'Admin User',
                'role': UserRole.ADMIN,
                'is_staff': True,
                'is_superuser': True,
            }
        )
        if created:
            admin.set_password('admin123')
            admin.save()
            self.stdout.write(f'Created admin user: {admin.username}')
        return admin

    def _create_user(self, team, role, index):
        first_name = random.choice(FIRST_NAMES)
        last_name = random.choice(LAST_NAMES)
        username = f"{team.name.lower()}_{first_name.lower()}{index}"

        user, created = User.objects.get_or_create(
            username=username,
            defaults={
                'email': f"{username}@example.com",
                'first_name': first_name,
                'last_name': last_name,
                'display_name': f"{first_name} {last_name}",
                'role': role,
                'team': team,
            }
        )
        if created:
            user.set_password('password123')
            user.save()
        return user

    def create_teams(self, members_per_team):
        self.stdout.write('Creating teams...')

        teams = []
        for name, description in TEAMS.items():
            team, _ = Team.objects.get_or_create(name=name, defaults={'description': description})
            self._create_user(team, UserRole.TEAM_LEADER, 0)
            for i in range(1, members_per_team + 1):
                self._create_user(team, UserRole.TEAM_MEMBER, i)
            teams.append(team)

        return teams

    def create_tasks(self, admin, teams, num_tasks):
        self.stdout.write('Creating tasks...')

        now = timezone.now()
        tasks = []
        for _ in range(num_tasks):
            team = random.choice(teams)
            members = list(team.members.all())
            assignee = random.choice(members + [None])
            status = random.choice([
                TaskStatus.DRAFT,
                TaskStatus.IN_PROGRESS,
                TaskStatus.PENDING_APPROVAL,
                TaskStatus.COMPLETED,
            ])

            task = Task.objects.create(
                title=random.choice(TASK_TITLES),
                description='Seeded task',
                status=status if assignee else TaskStatus.DRAFT,
                priority=random.choice(TaskPriority.values),
                scheduled_at=now + timedelta(days=random.randint(-10, 20)),
                estimated_hours=Decimal(random.choice([2, 4, 8, 12, 20])),
                created_by=random.choice(members) if members else admin,
                team=team,
                assigned_to=assignee,
            )
            if assignee and status == TaskStatus.PENDING_APPROVAL:
                ApprovalRequest.objects.create(
                    task=task,
                    status=ApprovalStatus.PENDING,
                    reason=f'Seeded assignment of "{task.title}" to {assignee.name}',
                    requested_by=assignee,
                )
            tasks.append(task)

        return tasks
