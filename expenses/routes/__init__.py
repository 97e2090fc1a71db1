"""Flask blueprints for the expense tracker.

Blueprints are defined in the sibling modules and registered in
:func:`expenses.create_app`.
"""
