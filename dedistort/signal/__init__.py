# -*- coding: utf-8 -*-
"""
Signal - Integral images and tile signal tests.

Author
------
Duane Smalley, PhD
duane.d.smalley@gmail.com

License
-------
MIT License
Copyright (c) 2024 geoint.org
See LICENSE file for full text.

Created
-------
2026-03-03

Modified
--------
2026-03-03
"""

from dedistort.signal.integral import IntegralImage
from dedistort.signal.evaluator import SignalEvaluator

__all__ = ['IntegralImage', 'SignalEvaluator']
