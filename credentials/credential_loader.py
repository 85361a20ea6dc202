"""Loading of the WordPress API credential."""
import base64
import logging
import os
from typing import Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from processor.models import MissingCredentialError

logger = logging.getLogger(__name__)

CREDENTIALS_ENV = 'WP_CREDENTIALS'
CREDENTIALS_PARAMETER_ENV = 'WP_CREDENTIALS_PARAMETER'


def load_credential(environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Read the raw ``user:application-password`` credential.

    WP_CREDENTIALS is used when set. Otherwise, if WP_CREDENTIALS_PARAMETER
    names an SSM parameter, its decrypted value is used.

    Args:
        environ: Environment mapping (default: os.environ)

    Returns:
        Raw credential string

    Raises:
        MissingCredentialError: If no non-empty credential is available
    """
    if environ is None:
        environ = os.environ

    credential = environ.get(CREDENTIALS_ENV)
    if credential:
        return credential

    parameter_name = environ.get(CREDENTIALS_PARAMETER_ENV)
    if parameter_name:
        credential = _read_parameter(parameter_name)
        if credential:
            return credential

    raise MissingCredentialError(
        f"no credentials provided in {CREDENTIALS_ENV} or {CREDENTIALS_PARAMETER_ENV}"
    )


def _read_parameter(name: str) -> Optional[str]:
    logger.info(f"Reading credential from SSM parameter {name}")
    try:
        ssm = boto3.client('ssm')
        response = ssm.get_parameter(Name=name, WithDecryption=True)
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Could not read SSM parameter {name}: {e}")
        return None
    return response['Parameter']['Value']


def basic_auth_token(credential: str) -> str:
    """Base64 encode a raw credential for a Basic Authorization header."""
    return base64.b64encode(credential.encode('utf-8')).decode('ascii')
