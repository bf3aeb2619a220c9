"""Command-line interface for the Voting Power Exchange"""
