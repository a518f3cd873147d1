from django.contrib.auth.models import AbstractUser
from django.db import models


class UserRole(models.TextChoices):
    ADMIN = "ADMIN", "Admin"
    TEAM_LEADER = "TEAM_LEADER", "Team Leader"
    TEAM_MEMBER = "TEAM_MEMBER", "Team Member"


class Team(models.Model):
    name = models.CharField(max_length=150)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def is_member(self, user):
        """Check if user belongs to the team"""
        return user is not None and user.team_id == self.id

    @property
    def member_count(self):
        return self.members.count()


class User(AbstractUser):
    display_name = models.CharField(max_length=150, blank=True, default="")
    role = models.CharField(
        max_length=16,
        choices=UserRole.choices,
        default=UserRole.TEAM_MEMBER,
    )
    team = models.ForeignKey(
        Team,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="members",
        help_text="A user belongs to at most one team",
    )

    class Meta:
        ordering = ["id"]
        indexes = [models.Index(fields=["team", "role"], name="users_user_team_id_role_idx")]

    def __str__(self):
        return self.username

    @property
    def name(self):
        return self.display_name or self.get_full_name() or self.username

    @property
    def is_admin(self):
        return self.role == UserRole.ADMIN

    @property
    def is_team_leader(self):
        return self.role == UserRole.TEAM_LEADER

    @property
    def can_approve(self):
        return self.role in (UserRole.ADMIN, UserRole.TEAM_LEADER)
