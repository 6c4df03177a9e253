"""
Render desired continuous-deployment objects as argoproj.io manifests.

Rendering is a pure function of the desired object. Output dicts are
ready for the cluster API or for yaml.safe_dump into the GitOps tree.
"""

from __future__ import annotations

from typing import Any, Dict, List

from infraforge.cd.objects import (
    ApplicationTemplate,
    DesiredApplication,
    DesiredApplicationSet,
    DesiredObject,
    DesiredProject,
    Destination,
    GitDirectoryGenerator,
    ListGenerator,
    Source,
    SyncPolicy,
)
from infraforge.generators.values import to_yaml


def render_source(source: Source) -> Dict[str, Any]:
    rendered: Dict[str, Any] = {
        "repoURL": source.repo_url,
        "targetRevision": source.target_revision,
    }
    if source.path is not None:
        rendered["path"] = source.path
    if source.chart is not None:
        rendered["chart"] = source.chart
    if source.ref is not None:
        rendered["ref"] = source.ref
    if source.directory_recurse:
        rendered["directory"] = {"recurse": True}
    if source.helm is not None:
        helm: Dict[str, Any] = {}
        if source.helm.release_name:
            helm["releaseName"] = source.helm.release_name
        if source.helm.value_files:
            helm["valueFiles"] = list(source.helm.value_files)
        if source.helm.values is not None:
            helm["values"] = source.helm.values
        rendered["helm"] = helm
    return rendered


def render_sync_policy(policy: SyncPolicy) -> Dict[str, Any]:
    automated: Dict[str, Any] = {"prune": policy.prune, "selfHeal": policy.self_heal}
    if policy.allow_empty is not None:
        automated["allowEmpty"] = policy.allow_empty
    rendered: Dict[str, Any] = {"automated": automated}
    if policy.sync_options:
        rendered["syncOptions"] = list(policy.sync_options)
    if policy.retry is not None:
        rendered["retry"] = {
            "limit": policy.retry.limit,
            "backoff": {
                "duration": policy.retry.duration,
                "factor": policy.retry.factor,
                "maxDuration": policy.retry.max_duration,
            },
        }
    return rendered


def _render_destination(destination: Destination) -> Dict[str, str]:
    return {"server": destination.server, "namespace": destination.namespace}


def _render_sources(sources: List[Source]) -> Dict[str, Any]:
    # A single source uses the legacy "source" field
    if len(sources) == 1:
        return {"source": render_source(sources[0])}
    return {"sources": [render_source(s) for s in sources]}


def _metadata(name: str, namespace: str, labels: Dict[str, str]) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"name": name, "namespace": namespace}
    if labels:
        metadata["labels"] = dict(labels)
    return metadata


def render_application(app: DesiredApplication) -> Dict[str, Any]:
    """Render an Application manifest."""
    metadata = _metadata(app.name, app.namespace, app.labels)
    if app.finalizers:
        metadata["finalizers"] = list(app.finalizers)

    spec: Dict[str, Any] = {"project": app.project}
    spec.update(_render_sources(app.sources))
    spec["destination"] = _render_destination(app.destination)
    spec["syncPolicy"] = render_sync_policy(app.sync_policy)
    if app.revision_history_limit is not None:
        spec["revisionHistoryLimit"] = app.revision_history_limit

    return {
        "apiVersion": app.resource_kind.api_version,
        "kind": app.kind,
        "metadata": metadata,
        "spec": spec,
    }


def render_project(project: DesiredProject) -> Dict[str, Any]:
    """Render an AppProject manifest."""
    spec: Dict[str, Any] = {
        "description": project.description,
        "sourceRepos": list(project.source_repos),
        "destinations": [_render_destination(d) for d in project.destinations],
        "clusterResourceWhitelist": [{"group": "*", "kind": "*"}],
        "namespaceResourceWhitelist": [{"group": "*", "kind": "*"}],
    }
    if project.roles:
        roles = []
        for role in project.roles:
            rendered: Dict[str, Any] = {"name": role.name, "policies": list(role.policies)}
            if role.groups:
                rendered["groups"] = list(role.groups)
            roles.append(rendered)
        spec["roles"] = roles
    if project.sync_windows:
        spec["syncWindows"] = [
            {
                "kind": w.kind,
                "schedule": w.schedule,
                "duration": w.duration,
                "applications": list(w.applications),
                "manualSync": w.manual_sync,
            }
            for w in project.sync_windows
        ]

    return {
        "apiVersion": project.resource_kind.api_version,
        "kind": project.kind,
        "metadata": _metadata(project.name, project.namespace, project.labels),
        "spec": spec,
    }


def _render_template(template: ApplicationTemplate) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"name": template.name}
    if template.namespace:
        metadata["namespace"] = template.namespace
    if template.labels:
        metadata["labels"] = dict(template.labels)

    spec: Dict[str, Any] = {"project": template.project}
    spec.update(_render_sources(template.sources))
    spec["destination"] = _render_destination(template.destination)
    spec["syncPolicy"] = render_sync_policy(template.sync_policy)
    return {"metadata": metadata, "spec": spec}


def render_application_set(appset: DesiredApplicationSet) -> Dict[str, Any]:
    """
    Render an ApplicationSet manifest.

    A ListGenerator renders a list generator (an empty element list is
    valid and yields no Applications). A GitDirectoryGenerator renders a
    git generator and switches the set to Go templating.
    """
    generator = appset.generator
    if isinstance(generator, ListGenerator):
        rendered_generator = {"list": {"elements": [dict(e) for e in generator.elements]}}
    elif isinstance(generator, GitDirectoryGenerator):
        rendered_generator = {
            "git": {
                "repoURL": generator.repo_url,
                "revision": generator.revision,
                "directories": [{"path": p} for p in generator.directories],
            }
        }
    else:
        raise TypeError(f"Unknown generator type: {type(generator).__name__}")

    spec: Dict[str, Any] = {}
    if appset.go_template:
        spec["goTemplate"] = True
    spec["generators"] = [rendered_generator]
    spec["template"] = _render_template(appset.template)

    return {
        "apiVersion": appset.resource_kind.api_version,
        "kind": appset.kind,
        "metadata": _metadata(appset.name, appset.namespace, appset.labels),
        "spec": spec,
    }


_RENDERERS = {
    DesiredApplication.kind: render_application,
    DesiredApplicationSet.kind: render_application_set,
    DesiredProject.kind: render_project,
}


def render_manifest(obj: DesiredObject) -> Dict[str, Any]:
    """Dispatch on the object's kind tag."""
    try:
        renderer = _RENDERERS[obj.kind]
    except KeyError:
        raise TypeError(f"Unknown desired object kind: {obj.kind}") from None
    return renderer(obj)


def manifest_yaml(obj: DesiredObject) -> str:
    return to_yaml(render_manifest(obj))
