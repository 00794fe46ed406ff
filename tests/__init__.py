"""Tests for wsrpc."""
