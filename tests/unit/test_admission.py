from __future__ import annotations

import pytest

from novel_engine.jobs.admission import AdmissionController, Admitted, Rejected


@pytest.mark.anyio
async def test_admits_below_the_cap(repo, seed_job) -> None:
  await seed_job("job-1")
  controller = AdmissionController(repo, max_jobs=2)

  decision = await controller.try_admit()

  assert decision == Admitted(active_count=1, max_jobs=2)


@pytest.mark.anyio
async def test_rejects_at_the_cap(repo, seed_job) -> None:
  await seed_job("job-1")
  await seed_job("job-2", status="outlining", current_phase="outline_generation")
  await seed_job("job-3", status="writing", current_phase="chapter_writing")
  controller = AdmissionController(repo, max_jobs=3)

  decision = await controller.try_admit()

  assert isinstance(decision, Rejected)
  assert decision.active_count == 3
  assert decision.max_jobs == 3


@pytest.mark.anyio
async def test_finished_jobs_do_not_count(repo, seed_job) -> None:
  await seed_job("job-1", status="completed", current_phase="completed")
  await seed_job("job-2", status="failed", current_phase="cancelled")
  await seed_job("job-3", status="pending", current_phase="premise_analysis")

  decision = await AdmissionController(repo, max_jobs=1).try_admit()

  assert isinstance(decision, Admitted)
  assert decision.active_count == 0


def test_cap_must_be_positive(repo) -> None:
  with pytest.raises(ValueError):
    AdmissionController(repo, max_jobs=0)
