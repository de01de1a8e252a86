"""Earth Engine session and authentication utilities."""

import logging
from datetime import datetime, timezone
from pathlib import Path

import ee
from google.auth import default

from gee_bridge import config

logger = logging.getLogger(__name__)

EE_SCOPES = [
    'https://www.googleapis.com/auth/earthengine',
    'https://www.googleapis.com/auth/cloud-platform',
    'https://www.googleapis.com/auth/devstorage.full_control',
]

_session: dict | None = None


def initialize_ee(
    project: str = None,
    service_account: str = None,
    key_file: str = None,
    opt_url: str = None,
    quiet: bool = False,
) -> dict:
    """
    Initialize the Earth Engine client and record the session.

    Credentials come from a service account key when both ``service_account``
    and ``key_file`` are given, otherwise from Application Default Credentials.
    The Cloud project is resolved in order: the ``project`` argument, the
    configured project, then the project attached to the credentials.

    Args:
        project: Google Cloud project registered for Earth Engine.
        service_account: Service account e-mail.
        key_file: Path to the service account JSON key.
        opt_url: Alternative API endpoint, e.g. the high-volume endpoint
            ``https://earthengine-highvolume.googleapis.com``.
        quiet: Do not log the initialization.

    Returns:
        dict: The session info (project, credentials, service_account,
        initialized_at).

    Raises:
        ValueError: If only one of service_account / key_file is given, or no
            project can be resolved.
    """
    global _session

    if (service_account is None) != (key_file is None):
        raise ValueError("service_account and key_file must be given together")

    if service_account is not None:
        credentials = ee.ServiceAccountCredentials(service_account, key_file)
        credentials_project = getattr(credentials, 'project_id', None)
    else:
        credentials, credentials_project = default(scopes=EE_SCOPES)

    project = project or config.GEE_PROJECT or credentials_project
    if not project:
        raise ValueError(
            "No Google Cloud project found. Pass project=..., set EE_PROJECT "
            "or add 'project' to the 'gee' section of config.yaml."
        )

    init_kwargs = {'credentials': credentials, 'project': project}
    if opt_url is not None:
        init_kwargs['opt_url'] = opt_url
    ee.Initialize(**init_kwargs)

    _session = {
        'project': project,
        'credentials': credentials,
        'service_account': service_account,
        'initialized_at': datetime.now(timezone.utc),
    }
    if not quiet:
        logger.info("Earth Engine initialized with project %s", project)
    return _session


def get_session() -> dict | None:
    """Return the session recorded by :func:`initialize_ee`, if any."""
    return _session


def reset_ee() -> None:
    """Tear down the Earth Engine session."""
    global _session
    ee.Reset()
    _session = None
    logger.info("Earth Engine session reset")


def check_authentication() -> dict[str, bool | str]:
    """
    Test authentication to the Earth Engine Python API.

    Returns:
        dict: A dictionary containing:
            - 'authenticated' (bool): Whether authentication was successful
            - 'message' (str): A descriptive message about the authentication status
            - 'project' (str | None): The authenticated project ID if available

    Examples:
        >>> result = check_authentication()
        >>> if result['authenticated']:
        ...     print(f"Authenticated with project: {result['project']}")
        ... else:
        ...     print(f"Authentication failed: {result['message']}")
    """
    try:
        if _session is None:
            ee.Initialize(project=config.GEE_PROJECT)

        try:
            # Asset roots look like: [{'id': 'projects/my-project/assets', ...}]
            asset_roots = ee.data.getAssetRoots()
            project_id = None
            if asset_roots and len(asset_roots) > 0:
                root_id = asset_roots[0].get('id', '')
                if root_id.startswith('projects/'):
                    project_id = root_id.split('/')[1]
                else:
                    project_id = root_id
            return {
                'authenticated': True,
                'message': 'Successfully authenticated to Earth Engine',
                'project': project_id
            }
        except Exception as e:
            return {
                'authenticated': True,
                'message': f'Authenticated but could not retrieve project info: {str(e)}',
                'project': None
            }

    except ee.EEException as e:
        return {
            'authenticated': False,
            'message': f'Earth Engine authentication failed: {str(e)}',
            'project': None
        }

    except Exception as e:
        return {
            'authenticated': False,
            'message': f'Authentication error: {str(e)}',
            'project': None
        }


def is_authenticated() -> bool:
    """
    Check if Earth Engine is authenticated.

    Returns:
        bool: True if authenticated, False otherwise
    """
    result = check_authentication()
    return result['authenticated']


def print_authentication_status() -> None:
    """
    Print the current Earth Engine authentication status to stdout.

    This is useful for debugging and CLI usage.
    """
    result = check_authentication()

    if result['authenticated']:
        print("✓ Earth Engine Authentication: SUCCESS")
        print(f"  Message: {result['message']}")
        if result['project']:
            print(f"  Project: {result['project']}")
    else:
        print("✗ Earth Engine Authentication: FAILED")
        print(f"  Message: {result['message']}")
        print("\nTo authenticate, run:")
        print("  earthengine authenticate")
        print("Or use service account authentication with:")
        print("  gee-bridge init --service-account EMAIL --key-file KEY.json")


def get_user_info() -> dict:
    """
    Summarize the current user and session.

    Returns:
        dict: project, asset_roots, credentials_path, initialized_at and
        ee_version.
    """
    roots = [root.get('id') for root in ee.data.getAssetRoots()]
    session = _session or {}
    return {
        'project': session.get('project', config.GEE_PROJECT),
        'asset_roots': roots,
        'credentials_path': ee.oauth.get_credentials_path(),
        'initialized_at': session.get('initialized_at'),
        'ee_version': ee.__version__,
    }


def clean_credentials(path: str | Path = None) -> bool:
    """
    Delete the stored Earth Engine user credentials.

    Args:
        path: Credentials file. Defaults to the location used by
            ``earthengine authenticate``.

    Returns:
        bool: True if a file was removed, False if there was nothing to remove.
    """
    path = Path(path) if path is not None else Path(ee.oauth.get_credentials_path())
    if not path.exists():
        logger.info("No credentials found at %s", path)
        return False
    path.unlink()
    logger.info("Removed credentials at %s", path)
    return True
