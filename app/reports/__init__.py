"""Conversation report generation.

Modules:
- payload: report schema, defaults and sanitizer
- summarize: prompt assembly and the LLM call
- text / pdf: plain-text and PDF renderers
- transcript / profile: conversation and participant lookups
- bookkeeping: targets, runs, summaries, templates, report rows
- pipeline: one end-to-end generation attempt
"""
