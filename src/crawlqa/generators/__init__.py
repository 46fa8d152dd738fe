"""
Test case generation from discovery results.
"""

from .flows import UserFlow, find_user_flows
from .test_case_generator import FLOW, INTERACTION, PAGE_LOAD, TestCaseGenerator

__all__ = ['FLOW', 'INTERACTION', 'PAGE_LOAD', 'TestCaseGenerator', 'UserFlow', 'find_user_flows']
