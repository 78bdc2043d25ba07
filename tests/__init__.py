"""Test package marker for the MailBrief suites.

What:
  Marks ``tests`` as a package so pytest resolves ``tests.unit`` and
  ``tests.e2e`` modules deterministically.

Invariants & Safety:
  - The file must remain side-effect free so that importing ``tests`` never
    mutates environment state or test fixtures.
"""
