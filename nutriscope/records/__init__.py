# -*- coding: utf-8 -*-
"""Domain records (food, labs, supplements, profile).

The analysis pipeline only reads these; the writers exist for local use and
test fixtures.
"""
