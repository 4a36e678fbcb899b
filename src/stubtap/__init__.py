"""
StubTap - rule-based HTTP mocking for tests and demos

Intercepts outgoing HTTP requests and answers them with canned responses
chosen by ordered, optionally limited-use mock rules.
"""

__version__ = '1.0.0'
