"""Stack parameter and tag normalization."""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from stackup.utils.errors import SourceReadError


class _UsePreviousValue:
    """Marker for a parameter that keeps its current value during an update."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "USE_PREVIOUS_VALUE"

    def __reduce__(self):
        return (_UsePreviousValue, ())


USE_PREVIOUS_VALUE = _UsePreviousValue()

ParameterValue = Union[str, _UsePreviousValue]


def _stringify(value: Any) -> str:
    # YAML "Key:" and JSON null both mean an empty value
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_stringify(v) for v in value)
    return str(value)


class Parameters:
    """An ordered mapping of parameter name to value or USE_PREVIOUS_VALUE.

    Accepts either a plain mapping (``{"Key": "value"}``) or the AWS list form
    (``[{"ParameterKey": ..., "ParameterValue": ...}]`` with optional
    ``UsePreviousValue``).
    """

    def __init__(self, data: Optional[Union[Mapping[str, Any], Iterable[Mapping[str, Any]]]] = None):
        self._values: Dict[str, ParameterValue] = {}
        if data is None:
            return
        if isinstance(data, Mapping):
            for key, value in data.items():
                self._values[str(key)] = self._coerce(value)
        elif isinstance(data, (list, tuple)):
            for record in data:
                self._add_record(record)
        else:
            raise SourceReadError(f"invalid parameters: expected a mapping or a list, got {type(data).__name__}")

    @staticmethod
    def _coerce(value: Any) -> ParameterValue:
        if value is USE_PREVIOUS_VALUE:
            return value
        if isinstance(value, Mapping) and value.get("UsePreviousValue"):
            return USE_PREVIOUS_VALUE
        return _stringify(value)

    def _add_record(self, record: Any) -> None:
        if not isinstance(record, Mapping) or "ParameterKey" not in record:
            raise SourceReadError(f"invalid parameter record: {record!r}")
        key = str(record["ParameterKey"])
        if record.get("UsePreviousValue"):
            self._values[key] = USE_PREVIOUS_VALUE
        else:
            self._values[key] = _stringify(record.get("ParameterValue", ""))

    def to_dict(self) -> Dict[str, ParameterValue]:
        return dict(self._values)

    def to_api(self) -> List[Dict[str, Any]]:
        """Convert to the list form expected by the CloudFormation API."""
        result = []
        for key, value in self._values.items():
            if value is USE_PREVIOUS_VALUE:
                result.append({"ParameterKey": key, "UsePreviousValue": True})
            else:
                result.append({"ParameterKey": key, "ParameterValue": value})
        return result


def merge_parameters(
    sources: Iterable[Any],
    overrides: Optional[Mapping[str, str]] = None
) -> Dict[str, ParameterValue]:
    """Merge parameter data from files in order, then apply explicit overrides.

    Later sources win on key collision; overrides always win.
    """
    merged: Dict[str, ParameterValue] = {}
    for data in sources:
        merged.update(Parameters(data).to_dict())
    if overrides:
        merged.update(overrides)
    return merged


def parse_overrides(override_list: Iterable[str]) -> Dict[str, str]:
    """Parse ``KEY=VALUE`` strings into a mapping; the value may contain '='."""
    result = {}
    for override in override_list:
        key, sep, value = override.partition("=")
        if not sep or not key:
            raise ValueError(f"{override!r} doesn't look like KEY=VALUE")
        result[key] = value
    return result


def resolve_parameters(
    planned: Mapping[str, ParameterValue],
    existing: Mapping[str, str]
) -> Dict[str, str]:
    """Apply planned parameters over existing ones, keeping existing values
    wherever USE_PREVIOUS_VALUE is requested."""
    result = dict(existing)
    for key, value in planned.items():
        if value is USE_PREVIOUS_VALUE:
            if key in existing:
                result[key] = existing[key]
        else:
            result[key] = value
    return result


def normalize_tags(data: Any) -> Dict[str, str]:
    """Normalize tag data (mapping or ``[{Key, Value}]`` list) into a mapping."""
    if data is None:
        return {}
    if isinstance(data, Mapping):
        return {str(k): _stringify(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        tags = {}
        for record in data:
            if not isinstance(record, Mapping) or "Key" not in record:
                raise SourceReadError(f"invalid tag record: {record!r}")
            tags[str(record["Key"])] = _stringify(record.get("Value", ""))
        return tags
    raise SourceReadError(f"invalid tags: expected a mapping or a list, got {type(data).__name__}")


def tags_to_api(tags: Mapping[str, str]) -> List[Dict[str, str]]:
    return [{"Key": key, "Value": value} for key, value in tags.items()]
