from dataclasses import dataclass
from pathlib import Path

from ghadispatch.config import UserConfig
from ghadispatch.config import resolve_data_dir
from ghadispatch.config import resolve_identity
from ghadispatch.config import resolve_token
from ghadispatch.github.client import GitHubActionsClient
from ghadispatch.github.http_wrapper import AiohttpGitHubHttpWrapper
from ghadispatch.github.http_wrapper import GitHubHttpWrapper
from ghadispatch.jobs.collector import Collector
from ghadispatch.jobs.correlator import Correlator
from ghadispatch.jobs.dispatcher import Dispatcher
from ghadispatch.jobs.job_store import JobStore
from ghadispatch.jobs.pipeline import Pipeline
from ghadispatch.jobs.poller import Poller


@dataclass(frozen=True)
class PipelineComponents:
    client: GitHubActionsClient
    job_store: JobStore
    dispatcher: Dispatcher
    pipeline: Pipeline


def create_pipeline_components(
    config: UserConfig,
    repository: str,
    request_wrapper: None | GitHubHttpWrapper = None,
    data_dir: None | Path = None,
) -> PipelineComponents:
    client = GitHubActionsClient(
        repository=repository,
        token=resolve_token(config),
        request_wrapper=request_wrapper
        if request_wrapper is not None
        else AiohttpGitHubHttpWrapper(),
        api_url=config.api_url,
    )
    job_store = JobStore(
        data_dir=data_dir if data_dir is not None else resolve_data_dir(config),
        repository=repository,
        identity=resolve_identity(config),
    )
    return PipelineComponents(
        client=client,
        job_store=job_store,
        dispatcher=Dispatcher(client, job_store),
        pipeline=Pipeline(
            job_store=job_store,
            correlator=Correlator(
                client, config.correlation, config.ambiguity_policy
            ),
            poller=Poller(client, config.polling, config.queued_interval_seconds),
            collector=Collector(client),
            export_marker=config.export_marker,
        ),
    )
