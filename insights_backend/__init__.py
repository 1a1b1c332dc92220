"""
InsightsLM Backend - Notebooks & Legal Assistant
================================================

Server side of the InsightsLM research assistant:
1. Notebooks with sources, notes and a RAG chat backed by an external workflow engine
2. Legal Assistant: cases, proceedings, case documents, generated legal documents
3. Shared legal library (regulations, rulings, templates)
4. Stripe subscriptions with per-plan limits
"""

__version__ = "1.0.0"
