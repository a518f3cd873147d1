"""
Tests for the common application.

This module contains tests for:
- Actor header authentication
- Error handling and bounded transactions
- Event publishing
- Rate limiting
"""
