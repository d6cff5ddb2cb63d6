"""Tests for core infrastructure: exceptions, services, mixins, health check."""
