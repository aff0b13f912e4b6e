"""Configuration management for the deploy CLI."""

from pathlib import Path
from dataclasses import dataclass
from typing import Optional
import yaml

from backend.app.config import AppSettings, load_settings

CONFIG_PATH = Path.home() / ".config" / "hwdeploy" / "config.yaml"


@dataclass
class Config:
    """Per-user CLI defaults layered under HELLOWORLD_* environment settings."""

    chart: Optional[Path] = None
    namespace: Optional[str] = None
    release_storage: Optional[str] = None
    kubeconfig: Optional[Path] = None
    image: str = "helloworld:1.0.0"
    minikube_profile: str = "minikube"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load config from ~/.config/hwdeploy/config.yaml or use defaults."""
        config_path = path or CONFIG_PATH

        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
            kubeconfig = data.get("kubeconfig", None)
            return cls(
                chart=Path(data["chart"]).expanduser() if data.get("chart") else None,
                namespace=data.get("namespace", None),
                release_storage=data.get("release_storage", None),
                kubeconfig=Path(kubeconfig).expanduser() if kubeconfig else None,
                image=data.get("image", cls.image),
                minikube_profile=data.get("minikube_profile", cls.minikube_profile),
            )

        return cls()

    def save(self, path: Optional[Path] = None):
        """Save config to file."""
        config_path = path or CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "image": self.image,
            "minikube_profile": self.minikube_profile,
        }
        if self.chart:
            data["chart"] = str(self.chart)
        if self.namespace:
            data["namespace"] = self.namespace
        if self.release_storage:
            data["release_storage"] = self.release_storage
        if self.kubeconfig:
            data["kubeconfig"] = str(self.kubeconfig)

        with open(config_path, "w") as f:
            yaml.safe_dump(data, f)

    def settings(self, **overrides) -> AppSettings:
        """Resolve runtime settings; explicit overrides beat this file, which beats env."""
        values = {
            "namespace": self.namespace,
            "release_storage": self.release_storage,
            "kubeconfig": self.kubeconfig,
        }
        values.update(overrides)
        return load_settings(**{key: value for key, value in values.items() if value is not None})
