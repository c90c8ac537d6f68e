"""Polymarket portfolio copytrade bot.

Mirror a target trader's Polymarket portfolio inside a bounded budget.
Each cycle converts the trader's positions into weights and per-market
targets, diffs them against the bot's own holdings, and executes the
resulting orders either as a paper simulation or on the live CLOB.
"""
