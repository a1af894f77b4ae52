#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
应用名称 -> 包名映射

Launch 动作的 app 参数可以是应用名称（"微信"）或包名（"com.tencent.mm"）。
包名直接使用，应用名称在这里查表（不区分大小写）。
"""

from typing import Optional

APP_PACKAGES: dict[str, str] = {
    # 社交通讯
    "微信": "com.tencent.mm",
    "WeChat": "com.tencent.mm",
    "QQ": "com.tencent.mobileqq",
    "微博": "com.sina.weibo",
    "钉钉": "com.alibaba.android.rimet",
    "飞书": "com.ss.android.lark",
    # 电商
    "淘宝": "com.taobao.taobao",
    "京东": "com.jingdong.app.mall",
    "拼多多": "com.xunmeng.pinduoduo",
    "闲鱼": "com.taobao.idlefish",
    # 生活服务
    "美团": "com.sankuai.meituan",
    "饿了么": "me.ele",
    "大众点评": "com.dianping.v1",
    "高德地图": "com.autonavi.minimap",
    "百度地图": "com.baidu.BaiduMap",
    "滴滴出行": "com.sdu.didi.psnger",
    "支付宝": "com.eg.android.AlipayGphone",
    "12306": "com.MobileTicket",
    "携程": "ctrip.android.view",
    # 内容
    "抖音": "com.ss.android.ugc.aweme",
    "快手": "com.smile.gifmaker",
    "小红书": "com.xingin.xhs",
    "哔哩哔哩": "tv.danmaku.bili",
    "bilibili": "tv.danmaku.bili",
    "知乎": "com.zhihu.android",
    "网易云音乐": "com.netease.cloudmusic",
    "QQ音乐": "com.tencent.qqmusic",
    "今日头条": "com.ss.android.article.news",
    # 系统
    "设置": "com.android.settings",
    "Settings": "com.android.settings",
    "相机": "com.android.camera",
    "Chrome": "com.android.chrome",
    "Gmail": "com.google.android.gm",
    "YouTube": "com.google.android.youtube",
}

_LOWER_INDEX = {name.lower(): package for name, package in APP_PACKAGES.items()}


class UnknownAppError(ValueError):
    """应用名称无法解析为包名"""


def resolve_package(app: str) -> str:
    """
    把应用名称或包名解析成包名

    Raises:
        UnknownAppError: 既不是已知应用名，也不像包名（不含 "."）
    """
    name = app.strip()
    package = APP_PACKAGES.get(name) or _LOWER_INDEX.get(name.lower())
    if package:
        return package
    if "." in name and " " not in name:
        return name
    raise UnknownAppError(f"Unknown app: {app}")


def find_app_name(package: str) -> Optional[str]:
    """包名 -> 应用名称（取映射中第一个匹配的名称）"""
    for name, pkg in APP_PACKAGES.items():
        if pkg == package:
            return name
    return None
