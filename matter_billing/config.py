import os
import yaml
import logging
from pathlib import Path
from typing import Any, Optional
from pydantic import BaseModel, Field
from matter_billing.modules.config_models import BusinessRulesConfig
from matter_billing.modules.errors import ConfigurationError

class BillingAppConfig(BaseModel):
    root_dir: Path

    # Fields derived from root_dir, calculated during initialization
    config_dir: Path = Field(default=None)
    templates_dir: Path = Field(default=None)
    output_dir: Path = Field(default=None)
    logs_dir: Path = Field(default=None)
    business_rules_path: Path = Field(default=None)
    api_base_url: Optional[str] = None

    _business_rules: Optional[BusinessRulesConfig] = None

    class Config:
        arbitrary_types_allowed = True

    def model_post_init(self, __context: Any) -> None:
        """Initialize dependent paths after root_dir is set."""
        if not self.config_dir: self.config_dir = self.root_dir / "config"
        if not self.templates_dir: self.templates_dir = self.root_dir / "matter_billing" / "templates"
        if not self.output_dir: self.output_dir = self.root_dir / "output"
        if not self.logs_dir: self.logs_dir = self.root_dir / "logs"
        if not self.business_rules_path: self.business_rules_path = self.config_dir / "business_rules.yaml"
        if not self.api_base_url: self.api_base_url = os.environ.get("BILLING_API_URL")

    @property
    def business_rules(self) -> BusinessRulesConfig:
        if self._business_rules is None:
            if not self.business_rules_path.exists():
                # Shipped defaults mirror config/business_rules.yaml
                self._business_rules = BusinessRulesConfig()
            else:
                with open(self.business_rules_path, 'r') as f:
                    try:
                        raw = yaml.safe_load(f) or {}
                    except yaml.YAMLError as e:
                        raise ConfigurationError(f"Unreadable business rules at {self.business_rules_path}: {e}") from e
                self._business_rules = BusinessRulesConfig(**raw)
        return self._business_rules

    @property
    def base_url(self) -> str:
        return (self.api_base_url or self.business_rules.api.base_url).rstrip("/")

    @classmethod
    def load_default(cls) -> 'BillingAppConfig':
        app_dir = Path(__file__).parent
        root_dir = app_dir.parent
        return cls(root_dir=root_dir)

def setup_logging(config: BillingAppConfig, level: int = logging.INFO):
    os.makedirs(config.logs_dir, exist_ok=True)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(config.logs_dir / 'billing.log'),
            logging.StreamHandler()
        ]
    )

# Singleton instance
config = BillingAppConfig.load_default()
