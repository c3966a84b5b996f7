"""配置管理模块

实现失败关键字配置文件的加载、验证和访问功能。
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from failure_keywords.extractors import Provider


class ConfigError(Exception):
    """配置错误异常"""

    pass


# 有效的提供商类型
VALID_PROVIDERS = {p.value for p in Provider}


@dataclass
class FailureKeywordRule:
    """失败关键字规则"""

    keywords: list[str] = field(default_factory=list)
    case_sensitive: bool = False
    enabled: bool = True

    def __post_init__(self) -> None:
        """验证配置值"""
        if not isinstance(self.keywords, list):
            raise ConfigError(f"keywords 必须是列表，当前值: {self.keywords!r}")
        for i, keyword in enumerate(self.keywords):
            if not isinstance(keyword, str):
                raise ConfigError(f"keywords[{i}] 必须是字符串，当前值: {keyword!r}")


@dataclass
class ChannelConfig:
    """上游渠道配置"""

    name: str
    provider: Provider
    rule: FailureKeywordRule
    models: dict[str, FailureKeywordRule] = field(default_factory=dict)

    def get_rule(self, model: str | None = None) -> FailureKeywordRule:
        """获取指定模型的规则，没有模型覆盖时使用渠道规则"""
        if model is not None and model in self.models:
            return self.models[model]
        return self.rule


@dataclass
class ConfigStore:
    """配置存储类

    负责加载、验证和提供失败关键字配置的访问。
    """

    _defaults: FailureKeywordRule = field(default_factory=FailureKeywordRule, repr=False)
    _channels: dict[str, ChannelConfig] = field(default_factory=dict, repr=False)
    _loaded: bool = field(default=False, repr=False)

    def load(self, path: str | Path) -> None:
        """从 YAML 文件加载配置

        Args:
            path: 配置文件路径

        Raises:
            ConfigError: 配置文件不存在、格式错误或验证失败
        """
        path = Path(path)

        if not path.exists():
            raise ConfigError(f"配置文件不存在: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML 格式错误: {e}")

        self.load_from_dict(data)

    def load_from_dict(self, data: Any) -> None:
        """从已解析的字典加载配置

        Raises:
            ConfigError: 验证失败
        """
        if not isinstance(data, dict):
            raise ConfigError("配置文件格式错误: 根节点必须是字典")

        self._parse_defaults(data)
        self._parse_channels(data)
        self._loaded = True

    def _parse_rule(
        self, rule_data: dict[str, Any], base: FailureKeywordRule, path: str
    ) -> FailureKeywordRule:
        """解析关键字规则，缺省字段从 base 继承"""
        keywords = rule_data.get("keywords", base.keywords)
        if not isinstance(keywords, list):
            raise ConfigError(f"{path}.keywords 必须是列表")
        for i, keyword in enumerate(keywords):
            if not isinstance(keyword, str):
                raise ConfigError(f"{path}.keywords[{i}] 必须是字符串")

        case_sensitive = rule_data.get("case_sensitive", base.case_sensitive)
        if not isinstance(case_sensitive, bool):
            raise ConfigError(f"{path}.case_sensitive 必须是布尔值")

        enabled = rule_data.get("enabled", base.enabled)
        if not isinstance(enabled, bool):
            raise ConfigError(f"{path}.enabled 必须是布尔值")

        return FailureKeywordRule(
            keywords=list(keywords),
            case_sensitive=case_sensitive,
            enabled=enabled,
        )

    def _parse_defaults(self, data: dict[str, Any]) -> None:
        """解析默认规则"""
        defaults_data = data.get("defaults") or {}
        if not isinstance(defaults_data, dict):
            raise ConfigError("defaults 配置节必须是字典")

        self._defaults = self._parse_rule(defaults_data, FailureKeywordRule(), "defaults")

    def _parse_channels(self, data: dict[str, Any]) -> None:
        """解析渠道配置"""
        channels_data = data.get("channels", [])
        if channels_data is None:
            channels_data = []
        if not isinstance(channels_data, list):
            raise ConfigError("channels 配置节必须是列表")

        self._channels = {}

        for i, channel_data in enumerate(channels_data):
            path = f"channels[{i}]"
            if not isinstance(channel_data, dict):
                raise ConfigError(f"{path} 必须是字典")

            name = channel_data.get("name")
            if not name or not isinstance(name, str):
                raise ConfigError(f"{path}.name 必须是非空字符串")
            if name in self._channels:
                raise ConfigError(f"{path}.name '{name}' 重复")

            provider = channel_data.get("provider")
            if not isinstance(provider, str) or provider not in VALID_PROVIDERS:
                raise ConfigError(
                    f"{path}.provider '{provider}' 无效，必须是 {sorted(VALID_PROVIDERS)} 之一"
                )

            rule = self._parse_rule(channel_data, self._defaults, path)

            models_data = channel_data.get("models") or {}
            if not isinstance(models_data, dict):
                raise ConfigError(f"{path}.models 必须是字典")

            models = {}
            for model, model_data in models_data.items():
                model_path = f"{path}.models.{model}"
                if not isinstance(model, str) or not model:
                    raise ConfigError(f"{path}.models 的键必须是非空字符串")
                if model_data is None:
                    model_data = {}
                if not isinstance(model_data, dict):
                    raise ConfigError(f"{model_path} 必须是字典")
                models[model] = self._parse_rule(model_data, rule, model_path)

            self._channels[name] = ChannelConfig(
                name=name,
                provider=Provider(provider),
                rule=rule,
                models=models,
            )

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            raise ConfigError("配置未加载")

    def get_defaults(self) -> FailureKeywordRule:
        """获取默认规则"""
        self._ensure_loaded()
        return self._defaults

    def get_channels(self) -> list[ChannelConfig]:
        """获取所有渠道配置"""
        self._ensure_loaded()
        return list(self._channels.values())

    def get_channel(self, name: str) -> ChannelConfig:
        """根据名称获取渠道配置

        Raises:
            ConfigError: 配置未加载或渠道不存在
        """
        self._ensure_loaded()
        channel = self._channels.get(name)
        if channel is None:
            raise ConfigError(f"渠道不存在: {name}")
        return channel

    def get_rule(self, channel: str, model: str | None = None) -> FailureKeywordRule:
        """获取渠道（及模型）对应的失败关键字规则

        Args:
            channel: 渠道名称
            model: 模型名称（可选），有覆盖配置时优先使用

        Returns:
            失败关键字规则
        """
        return self.get_channel(channel).get_rule(model)
