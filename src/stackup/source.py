"""Template, parameter, tag and policy sources.

A source is either inline content read from a local file (or a plain HTTP
URL), or a reference to an object in S3. Only the location of an S3 source is
sent to CloudFormation; its content is fetched on demand.
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import urlparse

import requests
import yaml
from botocore.exceptions import BotoCoreError, ClientError

from stackup.utils.errors import ErrorContext, SourceReadError, error_handler
from stackup.utils.logging import get_logger

logger = get_logger(__name__)

S3_HOST_PATTERN = re.compile(r"^(?:(?P<bucket>[^.]+)\.)?s3[.-](?:[a-z0-9-]+\.)?amazonaws\.com(?:\.cn)?$")


class CloudFormationYAMLLoader(yaml.SafeLoader):
    """YAML loader that expands CloudFormation short-form intrinsic functions."""


def _construct_intrinsic(loader: yaml.SafeLoader, tag_suffix: str, node: yaml.Node) -> Any:
    if isinstance(node, yaml.ScalarNode):
        value = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    elif isinstance(node, yaml.MappingNode):
        value = loader.construct_mapping(node, deep=True)
    else:
        raise yaml.constructor.ConstructorError(
            None, None, f"could not determine a constructor for the tag '!{tag_suffix}'", node.start_mark
        )

    if tag_suffix == "Ref":
        return {"Ref": value}
    if tag_suffix == "Condition":
        return {"Condition": value}
    if tag_suffix == "GetAtt" and isinstance(value, str):
        value = value.split(".", 1)
    return {f"Fn::{tag_suffix}": value}


CloudFormationYAMLLoader.add_multi_constructor("!", _construct_intrinsic)


def parse_data(body: str, location: str = "<string>") -> Any:
    """Parse JSON or (CloudFormation-flavoured) YAML text."""
    try:
        return json.loads(body)
    except ValueError:
        pass
    try:
        return yaml.load(body, Loader=CloudFormationYAMLLoader)
    except yaml.YAMLError as e:
        raise SourceReadError(f"cannot parse {location}: {e}", cause=e) from e


def s3_url(location: str) -> Optional[str]:
    """Return the HTTPS URL for an S3 location, or None if it is not one."""
    parsed = urlparse(location)
    if parsed.scheme == "s3":
        key = parsed.path.lstrip("/")
        return f"https://{parsed.netloc}.s3.amazonaws.com/{key}"
    if parsed.scheme == "https" and S3_HOST_PATTERN.match(parsed.netloc or ""):
        return location
    return None


def _s3_bucket_and_key(url: str):
    parsed = urlparse(url)
    match = S3_HOST_PATTERN.match(parsed.netloc)
    path = parsed.path.lstrip("/")
    if match and match.group("bucket"):
        return match.group("bucket"), path
    bucket, _, key = path.partition("/")
    return bucket, key


@dataclass(frozen=True)
class InlineSource:
    """Source whose content is sent inline."""
    location: str
    body: str
    data: Any = field(compare=False)

    @property
    def is_remote(self) -> bool:
        return False


@dataclass(frozen=True)
class RemoteSource:
    """Source stored in S3; only its URL is sent to CloudFormation."""
    location: str
    url: str

    @property
    def is_remote(self) -> bool:
        return True

    def fetch(self, s3_client) -> InlineSource:
        """Download the object and return it as inline content."""
        bucket, key = _s3_bucket_and_key(self.url)
        logger.debug(f"Reading s3://{bucket}/{key}")
        try:
            response = s3_client.get_object(Bucket=bucket, Key=key)
            body = response["Body"].read().decode("utf-8")
        except (ClientError, BotoCoreError) as e:
            raise error_handler.handle_exception(e, ErrorContext(operation="get_object")) from e
        except UnicodeDecodeError as e:
            raise SourceReadError(f"cannot read {self.location}: {e}", cause=e) from e
        return InlineSource(self.location, body, parse_data(body, self.location))


Source = Union[InlineSource, RemoteSource]


def load_source(location: str) -> Source:
    """Resolve a location (local path, S3 or HTTP URL) to a Source.

    Raises:
        SourceReadError: If the content cannot be read or parsed
    """
    url = s3_url(location)
    if url:
        return RemoteSource(location, url)

    parsed = urlparse(location)
    if parsed.scheme in ("http", "https"):
        try:
            response = requests.get(location, timeout=30)
            response.raise_for_status()
        except requests.RequestException as e:
            raise SourceReadError(f"cannot read {location}: {e}", cause=e) from e
        body = response.text
    else:
        try:
            body = Path(location).read_text(encoding="utf-8")
        except OSError as e:
            raise SourceReadError(f"cannot read {location}: {e.strerror or e}", cause=e) from e

    return InlineSource(location, body, parse_data(body, location))


def source_data(source: Source, s3_client=None) -> Any:
    """Return the parsed content of a source, downloading remote sources."""
    if isinstance(source, RemoteSource):
        if s3_client is None:
            raise SourceReadError(f"cannot read {source.location} without an S3 client")
        return source.fetch(s3_client).data
    return source.data
