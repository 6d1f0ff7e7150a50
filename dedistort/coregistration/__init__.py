# -*- coding: utf-8 -*-
"""
Co-Registration - Local distortion registration and consensus alignment.

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
2026-03-11

Modified
--------
2026-03-13
"""

from dedistort.coregistration.base import (
    CoRegistration,
    ConsensusResult,
    RefinementLevel,
    RegistrationResult,
)
from dedistort.coregistration.consensus import ConsensusReferenceBuilder
from dedistort.coregistration.local import (
    ConsensusCoRegistration,
    LocalDistortionCoRegistration,
)
from dedistort.coregistration.refinement import IterativeRefiner

__all__ = [
    'CoRegistration',
    'ConsensusCoRegistration',
    'ConsensusReferenceBuilder',
    'ConsensusResult',
    'IterativeRefiner',
    'LocalDistortionCoRegistration',
    'RefinementLevel',
    'RegistrationResult',
]
