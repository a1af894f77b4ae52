#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""配置：模型/Agent 参数、系统提示词、应用映射"""
