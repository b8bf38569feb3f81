#!/usr/bin/env python
"""
Test runner for the back-office apps using Django's configured test runner
Usage: python run_tests.py [app labels...]
"""
import os
import sys
import django
from django.conf import settings
from django.test.utils import get_runner

APPS = [
    'backoffice.core',
    'backoffice.inventory',
    'backoffice.parties',
    'backoffice.orders',
]

if __name__ == "__main__":
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'backoffice.config.settings')
    django.setup()
    TestRunner = get_runner(settings)
    test_runner = TestRunner()
    failures = test_runner.run_tests(sys.argv[1:] or APPS)
    sys.exit(bool(failures))
