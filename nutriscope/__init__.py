# -*- coding: utf-8 -*-
"""NutriScope: narrative nutrition, lab and supplement analyses from generative-text backends."""

__version__ = "0.1.0"
