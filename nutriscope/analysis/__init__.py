# -*- coding: utf-8 -*-
"""Structured inference orchestration.

aggregate (context) -> compose (prompts) -> invoke (gateway) -> validate
(sanitize) -> fallback -> store, plus reconciled second opinions.
"""
