# Approval Guard client

__version__ = "0.1.0"


def main():
    """Entry point for the approval-guard CLI command."""
    from approval_guard.app import run

    run()
