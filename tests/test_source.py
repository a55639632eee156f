"""
Tests for template and data sources.
"""

import io
from unittest.mock import Mock, patch

import pytest
import requests
from botocore.exceptions import NoCredentialsError

from conftest import client_error
from stackup.source import (
    InlineSource,
    RemoteSource,
    load_source,
    parse_data,
    s3_url,
    source_data,
)
from stackup.utils.errors import CredentialError, ServiceError, SourceReadError


class TestParseData:
    """Test JSON and YAML parsing."""

    def test_json(self) -> None:
        assert parse_data('{"a": [1, 2]}') == {"a": [1, 2]}

    def test_yaml_intrinsic_functions(self) -> None:
        body = (
            "Resources:\n"
            "  Bucket:\n"
            "    Type: AWS::S3::Bucket\n"
            "    Properties:\n"
            "      BucketName: !Sub '${AWS::StackName}-data'\n"
            "      Tags:\n"
            "        - Key: arn\n"
            "          Value: !GetAtt Role.Arn\n"
            "        - Key: ref\n"
            "          Value: !Ref Env\n"
            "Conditions:\n"
            "  Prod: !Equals [!Ref Env, prod]\n"
        )

        data = parse_data(body)

        properties = data["Resources"]["Bucket"]["Properties"]
        assert properties["BucketName"] == {"Fn::Sub": "${AWS::StackName}-data"}
        assert properties["Tags"][0]["Value"] == {"Fn::GetAtt": ["Role", "Arn"]}
        assert properties["Tags"][1]["Value"] == {"Ref": "Env"}
        assert data["Conditions"]["Prod"] == {"Fn::Equals": [{"Ref": "Env"}, "prod"]}

    def test_invalid(self) -> None:
        with pytest.raises(SourceReadError):
            parse_data("a: [unclosed", "broken.yml")


class TestS3Url:
    """Test recognition of S3 locations."""

    def test_s3_scheme(self) -> None:
        assert s3_url("s3://bucket/path/template.yml") == "https://bucket.s3.amazonaws.com/path/template.yml"

    def test_https_s3_host(self) -> None:
        url = "https://bucket.s3.us-east-1.amazonaws.com/template.yml"
        assert s3_url(url) == url

    def test_other_locations(self) -> None:
        assert s3_url("https://example.com/template.yml") is None
        assert s3_url("template.yml") is None


class TestLoadSource:
    """Test source resolution."""

    def test_local_file(self, tmp_path) -> None:
        path = tmp_path / "params.yml"
        path.write_text("Size: small\n")

        source = load_source(str(path))

        assert isinstance(source, InlineSource)
        assert not source.is_remote
        assert source.body == "Size: small\n"
        assert source.data == {"Size": "small"}

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(SourceReadError):
            load_source(str(tmp_path / "missing.yml"))

    def test_s3_location_is_not_fetched(self) -> None:
        source = load_source("s3://bucket/template.yml")

        assert isinstance(source, RemoteSource)
        assert source.is_remote
        assert source.url == "https://bucket.s3.amazonaws.com/template.yml"

    def test_http_location_is_fetched(self) -> None:
        response = Mock(text='{"Size": "small"}')
        with patch("stackup.source.requests.get", return_value=response) as mock_get:
            source = load_source("https://example.com/params.json")

        assert source.data == {"Size": "small"}
        mock_get.assert_called_once_with("https://example.com/params.json", timeout=30)

    def test_http_failure(self) -> None:
        with patch("stackup.source.requests.get", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(SourceReadError):
                load_source("https://example.com/params.json")


class TestSourceData:
    """Test reading source content."""

    def test_remote_source_reads_s3_object(self) -> None:
        s3 = Mock()
        s3.get_object.return_value = {"Body": io.BytesIO(b"team: platform\n")}

        data = source_data(load_source("s3://bucket/tags.yml"), s3)

        assert data == {"team": "platform"}
        s3.get_object.assert_called_once_with(Bucket="bucket", Key="tags.yml")

    def test_remote_source_requires_client(self) -> None:
        with pytest.raises(SourceReadError):
            source_data(RemoteSource("s3://bucket/tags.yml", "https://bucket.s3.amazonaws.com/tags.yml"))

    def test_remote_access_denied_is_service_error(self) -> None:
        s3 = Mock()
        s3.get_object.side_effect = client_error("AccessDenied", "Access Denied", "GetObject")

        with pytest.raises(ServiceError) as exc_info:
            source_data(load_source("s3://bucket/tags.yml"), s3)

        assert exc_info.value.context.error_code == "AccessDenied"
        assert exc_info.value.suggestions

    def test_remote_without_credentials_is_credential_error(self) -> None:
        s3 = Mock()
        s3.get_object.side_effect = NoCredentialsError()

        with pytest.raises(CredentialError):
            source_data(load_source("s3://bucket/tags.yml"), s3)

    def test_remote_undecodable_object(self) -> None:
        s3 = Mock()
        s3.get_object.return_value = {"Body": io.BytesIO(b"\xff\xfe\x00")}

        with pytest.raises(SourceReadError, match="s3://bucket/tags.yml"):
            source_data(load_source("s3://bucket/tags.yml"), s3)
