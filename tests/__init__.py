"""
Test Suite for quorum-agent
"""
