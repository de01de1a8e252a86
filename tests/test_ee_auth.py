"""Tests for Earth Engine session and authentication utilities."""

import os
from datetime import datetime
from unittest.mock import MagicMock, patch

import ee
import pytest

from gee_bridge import ee_auth
from gee_bridge.ee_auth import (
    check_authentication,
    clean_credentials,
    get_session,
    get_user_info,
    initialize_ee,
    is_authenticated,
    print_authentication_status,
    reset_ee,
)


@pytest.fixture(autouse=True)
def no_session():
    """Every test starts and ends without a recorded session."""
    ee_auth._session = None
    yield
    ee_auth._session = None


class TestInitializeEE:
    """Tests for session initialization and teardown."""

    @patch('gee_bridge.ee_auth.ee.Initialize')
    @patch('gee_bridge.ee_auth.default')
    def test_application_default_credentials(self, mock_default, mock_initialize):
        """ADC credentials and explicit project are passed to ee.Initialize."""
        credentials = MagicMock()
        mock_default.return_value = (credentials, 'adc-project')

        session = initialize_ee(project='my-project')

        mock_default.assert_called_once_with(scopes=ee_auth.EE_SCOPES)
        mock_initialize.assert_called_once_with(credentials=credentials, project='my-project')
        assert session['project'] == 'my-project'
        assert session['service_account'] is None
        assert isinstance(session['initialized_at'], datetime)
        assert get_session() is session

    @patch('gee_bridge.ee_auth.config.GEE_PROJECT', None)
    @patch('gee_bridge.ee_auth.ee.Initialize')
    @patch('gee_bridge.ee_auth.default')
    def test_project_falls_back_to_credentials(self, mock_default, mock_initialize):
        """Without a project argument or config the ADC project is used."""
        mock_default.return_value = (MagicMock(), 'adc-project')

        session = initialize_ee()

        assert session['project'] == 'adc-project'
        assert mock_initialize.call_args.kwargs['project'] == 'adc-project'

    @patch('gee_bridge.ee_auth.config.GEE_PROJECT', 'configured-project')
    @patch('gee_bridge.ee_auth.ee.Initialize')
    @patch('gee_bridge.ee_auth.default')
    def test_configured_project_wins_over_credentials(self, mock_default, mock_initialize):
        mock_default.return_value = (MagicMock(), 'adc-project')

        assert initialize_ee()['project'] == 'configured-project'

    @patch('gee_bridge.ee_auth.config.GEE_PROJECT', None)
    @patch('gee_bridge.ee_auth.ee.Initialize')
    @patch('gee_bridge.ee_auth.default')
    def test_no_project_raises(self, mock_default, mock_initialize):
        mock_default.return_value = (MagicMock(), None)

        with pytest.raises(ValueError, match="No Google Cloud project"):
            initialize_ee()
        mock_initialize.assert_not_called()

    @patch('gee_bridge.ee_auth.ee.Initialize')
    @patch('gee_bridge.ee_auth.ee.ServiceAccountCredentials')
    def test_service_account(self, mock_sa, mock_initialize):
        """Service account credentials are built from e-mail and key file."""
        credentials = MagicMock()
        credentials.project_id = 'sa-project'
        mock_sa.return_value = credentials

        session = initialize_ee(
            service_account='bot@sa-project.iam.gserviceaccount.com',
            key_file='key.json',
            opt_url='https://earthengine-highvolume.googleapis.com',
        )

        mock_sa.assert_called_once_with('bot@sa-project.iam.gserviceaccount.com', 'key.json')
        mock_initialize.assert_called_once_with(
            credentials=credentials,
            project=session['project'],
            opt_url='https://earthengine-highvolume.googleapis.com',
        )
        assert session['service_account'] == 'bot@sa-project.iam.gserviceaccount.com'

    def test_service_account_requires_key_file(self):
        with pytest.raises(ValueError, match="must be given together"):
            initialize_ee(service_account='bot@example.com')
        with pytest.raises(ValueError, match="must be given together"):
            initialize_ee(key_file='key.json')

    @patch('gee_bridge.ee_auth.ee.Reset')
    def test_reset_clears_session(self, mock_reset):
        ee_auth._session = {'project': 'p'}

        reset_ee()

        mock_reset.assert_called_once()
        assert get_session() is None


class TestAuthenticationFunctions:
    """Test suite for Earth Engine authentication functions."""

    @patch('gee_bridge.ee_auth.ee.Initialize')
    @patch('gee_bridge.ee_auth.ee.data.getAssetRoots')
    def test_successful_authentication(self, mock_get_roots, mock_initialize):
        """Test successful authentication with project info."""
        mock_initialize.return_value = None
        mock_get_roots.return_value = [{'id': 'projects/test-project/assets'}]

        result = check_authentication()

        assert result['authenticated'] is True
        assert 'Successfully authenticated' in result['message']
        assert result['project'] == 'test-project'
        mock_initialize.assert_called_once()

    @patch('gee_bridge.ee_auth.ee.Initialize')
    @patch('gee_bridge.ee_auth.ee.data.getAssetRoots')
    def test_existing_session_is_reused(self, mock_get_roots, mock_initialize):
        """No second ee.Initialize when a session is recorded."""
        ee_auth._session = {'project': 'test-project'}
        mock_get_roots.return_value = []

        result = check_authentication()

        assert result['authenticated'] is True
        mock_initialize.assert_not_called()

    @patch('gee_bridge.ee_auth.ee.Initialize')
    @patch('gee_bridge.ee_auth.ee.data.getAssetRoots')
    def test_authentication_without_project_info(self, mock_get_roots, mock_initialize):
        """Test authentication succeeds but can't get project info."""
        mock_get_roots.side_effect = Exception("Cannot retrieve project")

        result = check_authentication()

        assert result['authenticated'] is True
        assert 'could not retrieve project info' in result['message']
        assert result['project'] is None

    @patch('gee_bridge.ee_auth.ee.Initialize')
    def test_authentication_ee_exception(self, mock_initialize):
        """Test authentication fails with EE exception."""
        mock_initialize.side_effect = ee.EEException("Authentication required")

        result = check_authentication()

        assert result['authenticated'] is False
        assert 'Earth Engine authentication failed' in result['message']
        assert result['project'] is None

    @patch('gee_bridge.ee_auth.ee.Initialize')
    def test_authentication_generic_exception(self, mock_initialize):
        """Test authentication fails with generic exception."""
        mock_initialize.side_effect = RuntimeError("Network error")

        result = check_authentication()

        assert result['authenticated'] is False
        assert 'Authentication error' in result['message']

    @patch('gee_bridge.ee_auth.check_authentication')
    def test_is_authenticated(self, mock_check):
        mock_check.return_value = {'authenticated': True, 'message': 'Success', 'project': 'p'}
        assert is_authenticated() is True

        mock_check.return_value = {'authenticated': False, 'message': 'Failed', 'project': None}
        assert is_authenticated() is False

    @patch('gee_bridge.ee_auth.check_authentication')
    def test_print_authentication_status_success(self, mock_check, capsys):
        mock_check.return_value = {
            'authenticated': True,
            'message': 'Success',
            'project': 'test-project'
        }

        print_authentication_status()
        captured = capsys.readouterr()

        assert '✓ Earth Engine Authentication: SUCCESS' in captured.out
        assert 'test-project' in captured.out

    @patch('gee_bridge.ee_auth.check_authentication')
    def test_print_authentication_status_failure(self, mock_check, capsys):
        mock_check.return_value = {
            'authenticated': False,
            'message': 'Authentication required',
            'project': None
        }

        print_authentication_status()
        captured = capsys.readouterr()

        assert '✗ Earth Engine Authentication: FAILED' in captured.out
        assert 'Authentication required' in captured.out
        assert 'earthengine authenticate' in captured.out

    @patch('gee_bridge.ee_auth.check_authentication')
    def test_print_authentication_status_no_project(self, mock_check, capsys):
        mock_check.return_value = {'authenticated': True, 'message': 'Success', 'project': None}

        print_authentication_status()

        assert 'Project:' not in capsys.readouterr().out


class TestUserInfo:
    """Tests for user info and credential cleanup."""

    @patch('gee_bridge.ee_auth.ee.oauth.get_credentials_path')
    @patch('gee_bridge.ee_auth.ee.data.getAssetRoots')
    def test_get_user_info(self, mock_roots, mock_path):
        mock_roots.return_value = [{'id': 'projects/p/assets'}]
        mock_path.return_value = '/home/user/.config/earthengine/credentials'
        ee_auth._session = {'project': 'p', 'initialized_at': datetime(2024, 1, 1)}

        info = get_user_info()

        assert info['project'] == 'p'
        assert info['asset_roots'] == ['projects/p/assets']
        assert info['credentials_path'].endswith('credentials')
        assert info['initialized_at'] == datetime(2024, 1, 1)
        assert info['ee_version'] == ee.__version__

    def test_clean_credentials_removes_file(self, tmp_path):
        credentials = tmp_path / 'credentials'
        credentials.write_text('{"refresh_token": "x"}')

        assert clean_credentials(credentials) is True
        assert not credentials.exists()

    def test_clean_credentials_missing_file(self, tmp_path):
        assert clean_credentials(tmp_path / 'credentials') is False


@pytest.mark.integration
@pytest.mark.skipif(
    not os.environ.get('GEE_BRIDGE_INTEGRATION'),
    reason="Set GEE_BRIDGE_INTEGRATION=1 to run against Earth Engine"
)
class TestAuthenticationIntegration:
    """Integration tests for Earth Engine authentication."""

    def test_real_authentication_attempt(self):
        result = check_authentication()

        assert isinstance(result, dict)
        assert isinstance(result['authenticated'], bool)
        assert isinstance(result['message'], str)
