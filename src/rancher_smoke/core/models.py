"""Core data models for rancher-smoke."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PipelineState(str, Enum):
    """Smoke-test pipeline states, in the order they are reached."""

    IDLE = "idle"
    CONFIG_LOADED = "config-loaded"
    CONNECTED = "connected"
    PROVIDER_VARS_RESOLVED = "provider-vars-resolved"
    PROVISION_INITIALIZED = "provision-initialized"
    VARIABLES_WRITTEN = "variables-written"
    PROVISIONED = "provisioned"
    OUTPUTS_READ = "outputs-read"
    CREDENTIAL_OBTAINED = "credential-obtained"
    MANIFEST_APPLIED = "manifest-applied"
    POD_FOUND = "pod-found"
    POD_READY = "pod-ready"
    LOGS_FETCHED = "logs-fetched"
    EXEC_DONE = "exec-done"
    DESTROYED = "destroyed"
    DONE = "done"
    FAILED = "failed"
    INTERRUPTED = "interrupted"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.DONE, PipelineState.FAILED, PipelineState.INTERRUPTED)


class TerraformOutputs(BaseModel):
    """Values read back from ``terraform output -json``."""

    model_config = ConfigDict(frozen=True)

    cluster_id: str = ""
    cluster_name: str = ""
    provider: str = ""


class PipelineResult(BaseModel):
    """Outcome of a smoke-test run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: PipelineState
    failed_step: PipelineState | None = None
    error: Exception | None = None
    history: list[PipelineState] = Field(default_factory=list)
    outputs: TerraformOutputs | None = None
    pod_name: str | None = None
    logs: str | None = None
    exec_output: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.DONE

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1
