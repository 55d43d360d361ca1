"""
CLI presentation helpers — console output and prompts built on click.
"""
