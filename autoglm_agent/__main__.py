#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

import sys

from autoglm_agent.cli import main

sys.exit(main())
