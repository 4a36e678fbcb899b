"""
StubTap Mock Module

Rule-based mocking of outgoing HTTP requests.

This module provides:
- Predicates and the request matcher (wildcard URLs, JSON body subsets)
- Mock rules with limited uses, delays and exclusions
- Thread-safe mock registry
- httpx and requests interception adapters
- FastAPI-based mock server with admin API
- Rule encoding for files and cross-process transport
"""

from .predicates import (
    ANY_VALUE,
    Method,
    UrlPattern,
    QueryParam,
    HeaderParam,
    PathExtension,
    BodySubset,
    Predicate,
)
from .request import RequestView
from .json_match import JsonKind, json_kind, subset_matches
from .matcher import path_matches_pattern, evaluate, evaluate_all, first_failing
from .rules import (
    EmptyBody,
    DataBody,
    TextBody,
    ForcedError,
    CachePolicy,
    ResponseSpec,
    Respond,
    Exclude,
    Unlimited,
    RemainingUses,
    MockRule,
    response,
    rule,
    exclude_rule,
    json_file_body,
)
from .registry import MockRegistry, get_default_registry
from .codec import (
    encode_rule,
    decode_rule,
    dump_rules,
    load_rules,
    RuleLoader,
)
from .errors import (
    MockError,
    MockNotFoundError,
    JsonFileNotFoundError,
    ResponseBuildError,
    ForcedResponseError,
    InvalidRuleError,
    RuleDecodeError,
)
from .transport import MockTransport
from .adapters import MockAdapter
from .server import MockServer, MockConfig, MockMetrics, create_mock_server, push_mocks

__all__ = [
    # Predicates
    'ANY_VALUE',
    'Method',
    'UrlPattern',
    'QueryParam',
    'HeaderParam',
    'PathExtension',
    'BodySubset',
    'Predicate',

    # Matching
    'RequestView',
    'JsonKind',
    'json_kind',
    'subset_matches',
    'path_matches_pattern',
    'evaluate',
    'evaluate_all',
    'first_failing',

    # Rules
    'EmptyBody',
    'DataBody',
    'TextBody',
    'ForcedError',
    'CachePolicy',
    'ResponseSpec',
    'Respond',
    'Exclude',
    'Unlimited',
    'RemainingUses',
    'MockRule',
    'response',
    'rule',
    'exclude_rule',
    'json_file_body',

    # Registry
    'MockRegistry',
    'get_default_registry',

    # Codec
    'encode_rule',
    'decode_rule',
    'dump_rules',
    'load_rules',
    'RuleLoader',

    # Errors
    'MockError',
    'MockNotFoundError',
    'JsonFileNotFoundError',
    'ResponseBuildError',
    'ForcedResponseError',
    'InvalidRuleError',
    'RuleDecodeError',

    # Adapters
    'MockTransport',
    'MockAdapter',

    # Server
    'MockServer',
    'MockConfig',
    'MockMetrics',
    'create_mock_server',
    'push_mocks',
]

__version__ = '1.0.0'
