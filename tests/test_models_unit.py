#!/usr/bin/env python3
"""
Unit tests for session data models.
"""

import dataclasses

import pytest

from authshared.models import (
    AuthResult, CredentialPair, SessionPhase, SessionState, TransportResult
)


class TestSessionState:
    """Test session state snapshots."""

    def test_initial_state_is_loading(self):
        state = SessionState.loading()

        assert state.is_loading is True
        assert state.is_authenticated is False
        assert state.access_token is None
        assert state.refresh_token is None
        assert state.phase == SessionPhase.LOADING

    def test_phases(self):
        assert SessionState.unauthenticated().phase == SessionPhase.UNAUTHENTICATED
        assert SessionState.authenticated('a', 'r').phase == SessionPhase.AUTHENTICATED

    @pytest.mark.parametrize("kwargs", [
        {'is_authenticated': True, 'access_token': 'a', 'refresh_token': None},
        {'is_authenticated': True, 'access_token': None, 'refresh_token': 'r'},
        {'is_authenticated': False, 'access_token': 'a', 'refresh_token': 'r'},
        {'is_authenticated': True, 'access_token': '', 'refresh_token': 'r'},
    ])
    def test_authenticated_requires_both_tokens(self, kwargs):
        with pytest.raises(ValueError):
            SessionState(is_loading=False, **kwargs)

    def test_snapshot_is_immutable(self):
        state = SessionState.authenticated('a', 'r')
        with pytest.raises(dataclasses.FrozenInstanceError):
            state.access_token = 'other'

    def test_equality(self):
        assert SessionState.authenticated('a', 'r') == SessionState.authenticated('a', 'r')
        assert SessionState.authenticated('a', 'r') != SessionState.authenticated('a', 'r2')

    def test_to_dict(self):
        assert SessionState.authenticated('a', 'r').to_dict() == {
            'isAuthenticated': True,
            'accessToken': 'a',
            'refreshToken': 'r',
            'isLoading': False,
        }


class TestCredentialPair:
    """Test extracting tokens from token endpoint payloads."""

    def test_from_payload(self):
        pair = CredentialPair.from_payload({'access': 'a', 'refresh': 'r', 'extra': 1})
        assert pair == CredentialPair('a', 'r')

    @pytest.mark.parametrize("payload", [
        None,
        {},
        {'access': 'a'},
        {'refresh': 'r'},
        {'access': '', 'refresh': 'r'},
        {'access': 'a', 'refresh': None},
        {'access': 1, 'refresh': 'r'},
        ['a', 'r'],
    ])
    def test_incomplete_payload(self, payload):
        assert CredentialPair.from_payload(payload) is None

    def test_direct_construction_requires_both(self):
        with pytest.raises(ValueError):
            CredentialPair('a', '')


class TestTransportResult:

    def test_ok_defaults_payload(self):
        assert TransportResult.ok(None).payload == {}
        assert TransportResult.ok({'id': 1}).payload == {'id': 1}

    def test_failed_with_and_without_detail(self):
        assert TransportResult.failed().has_detail is False
        assert TransportResult.failed({'detail': 'x'}).has_detail is True


class TestAuthResult:

    def test_success_to_dict(self):
        assert AuthResult(success=True).to_dict() == {'success': True}

    def test_rejection_to_dict(self):
        result = AuthResult(success=False, data={'detail': 'bad'})
        assert result.to_dict() == {'success': False, 'data': {'detail': 'bad'}}

    def test_rejection_without_body_keeps_data_key(self):
        assert AuthResult(success=False).to_dict() == {'success': False, 'data': None}

    def test_network_error_to_dict(self):
        result = AuthResult(success=False, message='network error')
        assert result.to_dict() == {'success': False, 'message': 'network error'}
