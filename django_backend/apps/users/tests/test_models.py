from django.contrib.auth import get_user_model
from django.test import TestCase

from apps.users.models import Team, UserRole

User = get_user_model()


class UserModelTest(TestCase):
    """Test cases for the User model"""

    def test_create_user_defaults(self):
        """Test that a new user is a team member without a team"""
        user = User.objects.create_user(username="testuser", email="test@example.com", password="testpass123")

        self.assertEqual(user.role, UserRole.TEAM_MEMBER)
        self.assertIsNone(user.team)
        self.assertFalse(user.can_approve)
        self.assertTrue(user.check_password("testpass123"))

    def test_name_prefers_display_name(self):
        """Test the name shown in rationales and notifications"""
        user = User.objects.create_user(username="jdoe", first_name="Jane", last_name="Doe")
        self.assertEqual(user.name, "Jane Doe")

        user.display_name = "JD"
        self.assertEqual(user.name, "JD")

        self.assertEqual(User(username="plain").name, "plain")

    def test_roles(self):
        """Test the role helpers"""
        admin = User(username="admin", role=UserRole.ADMIN)
        leader = User(username="leader", role=UserRole.TEAM_LEADER)

        self.assertTrue(admin.is_admin)
        self.assertTrue(admin.can_approve)
        self.assertTrue(leader.is_team_leader)
        self.assertTrue(leader.can_approve)


class TeamModelTest(TestCase):
    """Test cases for the Team model"""

    def setUp(self):
        self.team = Team.objects.create(name="Platform", description="Backend")
        self.member = User.objects.create_user(username="member", team=self.team)
        self.outsider = User.objects.create_user(username="outsider")

    def test_membership(self):
        """Test that a user belongs to at most one team"""
        self.assertTrue(self.team.is_member(self.member))
        self.assertFalse(self.team.is_member(self.outsider))
        self.assertFalse(self.team.is_member(None))
        self.assertEqual(self.team.member_count, 1)

    def test_deleting_team_keeps_members(self):
        """Test that members survive their team"""
        self.team.delete()
        self.member.refresh_from_db()

        self.assertIsNone(self.member.team)

    def test_string_representation(self):
        self.assertEqual(str(self.team), "Platform")
