"""
Test support for table-spine tests.

Entity declarations shared by the ORM, coordinator and CLI tests live in
:mod:`_support.entities`; they are module-level so annotation resolution and
``module:Class`` loading both work.
"""
