"""
StubTap Rule Codec

Encodes mock rules to plain dicts / JSON and back, so rules can travel
between a test driver and the process under test (admin API, rule files).

Rule format:
    {
        "when": [{"type": "method", "method": "GET"},
                 {"type": "url", "pattern": "https://*/users/*"}],
        "outcome": {"type": "response",
                    "response": {"status_code": 200,
                                 "headers": {"Content-Type": "application/json"},
                                 "body": {"type": "string", "text": "{}"}}},
        "delay": 0.5,
        "consumption": {"type": "remaining_uses", "remaining": 1}
    }

Rule files may also use two decode-only body shorthands:
    {"type": "json", "value": {...}}   - serialized to a string body
    {"type": "file", "name": "users"}  - loaded from <bundle_dir>/users.json
"""

import base64
import binascii
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import InvalidRuleError, RuleDecodeError
from .predicates import (
    ANY_VALUE,
    BodySubset,
    HeaderParam,
    Method,
    PathExtension,
    Predicate,
    QueryParam,
    UrlPattern,
)
from .rules import (
    Body,
    CachePolicy,
    ConsumptionPolicy,
    DataBody,
    EmptyBody,
    Exclude,
    ForcedError,
    MockRule,
    Outcome,
    RemainingUses,
    Respond,
    ResponseSpec,
    TextBody,
    Unlimited,
    json_file_body,
)


# Encoding

def encode_predicate(predicate: Predicate) -> Dict[str, Any]:
    """Encode a predicate to a dict."""
    if isinstance(predicate, Method):
        return {'type': 'method', 'method': predicate.method}
    if isinstance(predicate, UrlPattern):
        return {'type': 'url', 'pattern': predicate.pattern}
    if isinstance(predicate, QueryParam):
        data: Dict[str, Any] = {'type': 'query_param', 'key': predicate.key}
        # ANY_VALUE is encoded by leaving "value" out
        if predicate.value is not ANY_VALUE:
            data['value'] = predicate.value
        return data
    if isinstance(predicate, HeaderParam):
        return {'type': 'header_param', 'key': predicate.key, 'value': predicate.value}
    if isinstance(predicate, PathExtension):
        return {'type': 'path_extension', 'extension': predicate.extension}
    if isinstance(predicate, BodySubset):
        return {'type': 'body_subset', 'expected': predicate.expected}
    raise TypeError(f"Unknown predicate type: {type(predicate).__name__}")


def encode_body(body: Body) -> Dict[str, Any]:
    """Encode a response body to a dict; bytes are base64."""
    if isinstance(body, EmptyBody):
        return {'type': 'none'}
    if isinstance(body, DataBody):
        return {'type': 'data', 'base64': base64.b64encode(body.data).decode('ascii')}
    if isinstance(body, TextBody):
        return {'type': 'string', 'text': body.text}
    if isinstance(body, ForcedError):
        return {'type': 'force_error', 'code': body.code, 'domain': body.domain}
    raise TypeError(f"Unknown body type: {type(body).__name__}")


def encode_response(spec: ResponseSpec) -> Dict[str, Any]:
    return {
        'status_code': spec.status_code,
        'headers': dict(spec.headers) if spec.headers is not None else None,
        'body': encode_body(spec.body),
        'cache_storage_policy': spec.cache_storage_policy.value,
        'http_version': spec.http_version,
    }


def encode_outcome(outcome: Outcome) -> Dict[str, Any]:
    if isinstance(outcome, Respond):
        return {'type': 'response', 'response': encode_response(outcome.response)}
    if isinstance(outcome, Exclude):
        return {'type': 'exclude'}
    raise TypeError(f"Unknown outcome type: {type(outcome).__name__}")


def encode_consumption(consumption: ConsumptionPolicy) -> Dict[str, Any]:
    if isinstance(consumption, Unlimited):
        return {'type': 'unlimited'}
    if isinstance(consumption, RemainingUses):
        return {'type': 'remaining_uses', 'remaining': consumption.remaining}
    raise TypeError(f"Unknown consumption type: {type(consumption).__name__}")


def encode_rule(mock_rule: MockRule) -> Dict[str, Any]:
    """
    Encode a rule to a JSON-compatible dict.

    Args:
        mock_rule: Rule to encode

    Returns:
        Dict in the rule format described in the module docstring
    """
    return {
        'when': [encode_predicate(p) for p in mock_rule.predicates],
        'outcome': encode_outcome(mock_rule.outcome),
        'delay': mock_rule.delay,
        'consumption': encode_consumption(mock_rule.consumption),
        'match_count': mock_rule.match_count,
    }


def dump_rules(rules: List[MockRule], indent: Optional[int] = None) -> str:
    """Encode rules to JSON text."""
    return json.dumps([encode_rule(r) for r in rules], indent=indent, sort_keys=True)


# Decoding

def decode_predicate(data: Dict[str, Any]) -> Predicate:
    kind = _require(data, 'type')
    if kind == 'method':
        return Method(_require_str(data, 'method'))
    if kind == 'url':
        return UrlPattern(_require_str(data, 'pattern'))
    if kind == 'query_param':
        value = data['value'] if 'value' in data else ANY_VALUE
        if value is not ANY_VALUE and value is not None and not isinstance(value, str):
            raise RuleDecodeError(f"query_param value must be a string or null, got {value!r}")
        return QueryParam(_require_str(data, 'key'), value)
    if kind == 'header_param':
        return HeaderParam(_require_str(data, 'key'), _require_str(data, 'value'))
    if kind == 'path_extension':
        return PathExtension(_require_str(data, 'extension'))
    if kind == 'body_subset':
        return BodySubset(_require(data, 'expected', allow_none=True))
    raise RuleDecodeError(f"Unknown predicate type: {kind!r}")


def decode_body(data: Optional[Dict[str, Any]], bundle_dir: Optional[Union[str, Path]] = None) -> Body:
    if data is None:
        return EmptyBody()

    kind = _require(data, 'type')
    if kind == 'none':
        return EmptyBody()
    if kind == 'data':
        try:
            return DataBody(base64.b64decode(_require_str(data, 'base64'), validate=True))
        except binascii.Error as e:
            raise RuleDecodeError(f"Invalid base64 body: {e}") from e
    if kind == 'string':
        return TextBody(_require_str(data, 'text'))
    if kind == 'force_error':
        return ForcedError(code=_require_int(data, 'code'), domain=_require_str(data, 'domain'))
    if kind == 'json':
        return TextBody(json.dumps(_require(data, 'value', allow_none=True)))
    if kind == 'file':
        return json_file_body(_require_str(data, 'name'), bundle_dir or Path.cwd())
    raise RuleDecodeError(f"Unknown body type: {kind!r}")


def decode_response(data: Dict[str, Any], bundle_dir: Optional[Union[str, Path]] = None) -> ResponseSpec:
    headers = data.get('headers')
    if headers is not None and not isinstance(headers, dict):
        raise RuleDecodeError(f"headers must be a mapping, got {type(headers).__name__}")

    policy = data.get('cache_storage_policy', CachePolicy.NOT_ALLOWED.value)
    try:
        cache_policy = CachePolicy(policy)
    except ValueError as e:
        raise RuleDecodeError(f"Unknown cache storage policy: {policy!r}") from e

    return ResponseSpec(
        status_code=_require_int(data, 'status_code'),
        headers={str(k): str(v) for k, v in headers.items()} if headers is not None else None,
        body=decode_body(data.get('body'), bundle_dir),
        cache_storage_policy=cache_policy,
        http_version=data.get('http_version', 'HTTP/1.1')
    )


def decode_outcome(data: Dict[str, Any], bundle_dir: Optional[Union[str, Path]] = None) -> Outcome:
    kind = _require(data, 'type')
    if kind == 'response':
        return Respond(decode_response(_require_mapping(data, 'response'), bundle_dir))
    if kind == 'exclude':
        return Exclude()
    raise RuleDecodeError(f"Unknown outcome type: {kind!r}")


def decode_consumption(data: Optional[Dict[str, Any]]) -> ConsumptionPolicy:
    if data is None:
        return Unlimited()

    kind = _require(data, 'type')
    if kind == 'unlimited':
        return Unlimited()
    if kind == 'remaining_uses':
        return RemainingUses(_require_int(data, 'remaining'))
    raise RuleDecodeError(f"Unknown consumption type: {kind!r}")


def decode_rule(data: Dict[str, Any], bundle_dir: Optional[Union[str, Path]] = None) -> MockRule:
    """
    Decode a rule from its dict form.

    Args:
        data: Encoded rule
        bundle_dir: Directory for "file" body shorthands

    Returns:
        MockRule

    Raises:
        RuleDecodeError: If the data doesn't describe a valid rule
    """
    if not isinstance(data, dict):
        raise RuleDecodeError(f"Rule must be a mapping, got {type(data).__name__}")

    when = _require(data, 'when')
    if not isinstance(when, list):
        raise RuleDecodeError("'when' must be a list of predicates")

    try:
        return MockRule(
            predicates=tuple(decode_predicate(_as_mapping(p)) for p in when),
            outcome=decode_outcome(_require_mapping(data, 'outcome'), bundle_dir),
            delay=_optional_float(data.get('delay')),
            consumption=decode_consumption(data.get('consumption')),
            match_count=int(data.get('match_count', 0))
        )
    except InvalidRuleError as e:
        raise RuleDecodeError(str(e)) from e


def load_rules(text: Union[str, bytes], bundle_dir: Optional[Union[str, Path]] = None) -> List[MockRule]:
    """
    Decode rules from JSON text.

    Accepts a list of rules, a single rule, or {"mocks": [...]}.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise RuleDecodeError(f"Invalid JSON: {e}") from e
    return decode_rules(data, bundle_dir)


def decode_rules(data: Any, bundle_dir: Optional[Union[str, Path]] = None) -> List[MockRule]:
    if isinstance(data, dict):
        data = data['mocks'] if 'mocks' in data else [data]
    if not isinstance(data, list):
        raise RuleDecodeError(f"Expected a list of rules, got {type(data).__name__}")
    return [decode_rule(item, bundle_dir) for item in data]


class RuleLoader:
    """
    Loader for StubTap rule files.

    Handles JSON (.json) and YAML (.yaml, .yml) files holding either a
    list of rules or a mapping with a "mocks" key. "file" body shorthands
    are resolved relative to the rule file's directory.

    Example:
        rules = RuleLoader("mocks.yaml").load()
        registry.set(rules)
    """

    def __init__(self, file_path: Union[str, Path]):
        """
        Initialize rule loader.

        Args:
            file_path: Path to rule file
        """
        self.file_path = Path(file_path)

    def load(self) -> List[MockRule]:
        """
        Load rules from file.

        Returns:
            List of mock rules

        Raises:
            FileNotFoundError: If the rule file doesn't exist
            RuleDecodeError: If the file content is invalid
        """
        if not self.file_path.exists():
            raise FileNotFoundError(f"Rule file not found: {self.file_path}")

        with open(self.file_path, 'r', encoding='utf-8') as f:
            try:
                if self.file_path.suffix.lower() in ('.yaml', '.yml'):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
            except (yaml.YAMLError, json.JSONDecodeError) as e:
                raise RuleDecodeError(f"Can't parse {self.file_path}: {e}") from e

        if data is None:
            return []
        return decode_rules(data, bundle_dir=self.file_path.parent)

    @staticmethod
    def load_from_file(file_path: Union[str, Path]) -> List[MockRule]:
        """Convenience method to load rules in one call."""
        return RuleLoader(file_path).load()


# Field helpers

_MISSING = object()


def _require(data: Dict[str, Any], key: str, allow_none: bool = False) -> Any:
    value = data.get(key, _MISSING) if isinstance(data, dict) else _MISSING
    if value is _MISSING or (value is None and not allow_none):
        raise RuleDecodeError(f"Missing required field: {key!r}")
    return value


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = _require(data, key)
    if not isinstance(value, str):
        raise RuleDecodeError(f"Field {key!r} must be a string, got {value!r}")
    return value


def _require_int(data: Dict[str, Any], key: str) -> int:
    value = _require(data, key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise RuleDecodeError(f"Field {key!r} must be an integer, got {value!r}")
    return value


def _require_mapping(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    return _as_mapping(_require(data, key))


def _as_mapping(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise RuleDecodeError(f"Expected a mapping, got {value!r}")
    return value


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuleDecodeError(f"delay must be a number, got {value!r}")
    return float(value)
