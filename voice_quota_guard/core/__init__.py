"""
Core modules for Voice Quota Guard.

This package contains plan policies, window evaluation, admission control,
cost accounting, bonus accrual, usage recording and statistics.
"""
