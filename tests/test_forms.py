import pytest

from perspective.models import CoverImage
from perspective.services.forms import (
    BlogFormController,
    DraftInvalid,
    SubmissionInProgress,
    SubmissionState,
    derive_excerpt,
    validate_draft,
    validate_image,
)

S = SubmissionState


def valid_form(**overrides):
    form = {
        "title": "My Trip",
        "content": "a" * 60,
        "excerpt": "",
        "category": "travel",
        "published": False,
    }
    form.update(overrides)
    return form


def png(size: int) -> CoverImage:
    return CoverImage(filename="cover.png", content=b"\0" * size, content_type="image/png")


# --- validate_draft ---

def test_valid_draft_passes():
    draft = validate_draft(valid_form())
    assert draft.title == "My Trip"
    assert draft.category == "travel"
    assert draft.excerpt is None


@pytest.mark.parametrize("overrides, message", [
    ({"title": "ab"}, "Title must be at least 3 characters"),
    ({"title": "t" * 201}, "Title is too long"),
    ({"content": "a" * 10}, "Content must be at least 50 characters"),
    ({"excerpt": "e" * 301}, "Excerpt is too long"),
    ({"category": ""}, "Please select a category"),
    ({"category": "cooking"}, "Unknown category"),
])
def test_each_constraint_has_its_own_message(overrides, message):
    with pytest.raises(DraftInvalid) as excinfo:
        validate_draft(valid_form(**overrides))
    assert excinfo.value.message == message


def test_only_first_violation_is_reported():
    with pytest.raises(DraftInvalid) as excinfo:
        validate_draft(valid_form(title="ab", content="short", category=""))
    assert excinfo.value.message == "Title must be at least 3 characters"
    assert excinfo.value.field == "title"


def test_boundary_lengths_are_accepted():
    draft = validate_draft(valid_form(title="abc", content="c" * 50, excerpt="e" * 300))
    assert len(draft.excerpt) == 300
    assert validate_draft(valid_form(title="t" * 200)).title == "t" * 200


def test_missing_fields_fail_on_title():
    with pytest.raises(DraftInvalid) as excinfo:
        validate_draft({})
    assert excinfo.value.message == "Title must be at least 3 characters"


@pytest.mark.parametrize("missing, message", [
    ("title", "Title must be at least 3 characters"),
    ("content", "Content must be at least 50 characters"),
    ("category", "Please select a category"),
])
def test_absent_field_is_rejected(missing, message):
    form = valid_form()
    del form[missing]
    with pytest.raises(DraftInvalid) as excinfo:
        validate_draft(form)
    assert excinfo.value.message == message
    assert excinfo.value.field == missing


def test_absent_optional_fields_use_defaults():
    draft = validate_draft({"title": "My Trip", "content": "a" * 60, "category": "travel"})
    assert draft.excerpt is None
    assert draft.published is False


# --- excerpts ---

def test_short_content_excerpt_is_whole_content_with_ellipsis():
    draft = validate_draft(valid_form())
    assert draft.resolved_excerpt == "a" * 60 + "..."


def test_long_content_excerpt_is_cut_at_150():
    content = "".join(str(i % 10) for i in range(400))
    assert derive_excerpt(content) == content[:150] + "..."


def test_authored_excerpt_is_kept():
    draft = validate_draft(valid_form(excerpt="Sun, sand and a delayed ferry."))
    assert draft.to_record()["excerpt"] == "Sun, sand and a delayed ferry."


# --- images ---

def test_image_at_limit_is_accepted():
    image = png(5 * 1024 * 1024)
    assert validate_image(image) is image


def test_image_over_limit_is_rejected():
    with pytest.raises(DraftInvalid) as excinfo:
        validate_image(png(5 * 1024 * 1024 + 1))
    assert excinfo.value.message == "Please select an image under 5MB"


def test_non_image_is_rejected():
    doc = CoverImage(filename="notes.pdf", content=b"%PDF", content_type="application/pdf")
    with pytest.raises(DraftInvalid):
        validate_image(doc)


# --- BlogFormController ---

@pytest.mark.asyncio
async def test_successful_submission_walks_the_happy_path(repository, fake):
    controller = BlogFormController(repository)

    post = await controller.submit_new("user-1", valid_form())

    assert post is not None
    assert post.excerpt == "a" * 60 + "..."
    assert post.published is False
    assert controller.transitions == [S.IDLE, S.VALIDATING, S.SUBMITTING, S.SUCCEEDED]
    assert controller.succeeded
    assert len(fake.rows) == 1


@pytest.mark.asyncio
async def test_rejected_draft_makes_no_network_call(repository, fake):
    controller = BlogFormController(repository)

    post = await controller.submit_new("user-1", valid_form(content="a" * 10))

    assert post is None
    assert controller.error == "Content must be at least 50 characters"
    assert controller.state is S.IDLE
    assert controller.transitions == [S.IDLE, S.VALIDATING, S.REJECTED, S.IDLE]
    assert fake.requests == []
    assert fake.rows == []


@pytest.mark.asyncio
async def test_untitled_draft_is_never_inserted(repository, fake):
    controller = BlogFormController(repository)

    post = await controller.submit_new("user-1", {"content": "a" * 60, "category": "travel"})

    assert post is None
    assert controller.error == "Title must be at least 3 characters"
    assert fake.requests == []


@pytest.mark.asyncio
async def test_backend_failure_returns_to_idle_and_allows_retry(repository, fake):
    controller = BlogFormController(repository)
    fake.fail("POST", "/rest/v1/blogs")

    assert await controller.submit_new("user-1", valid_form()) is None
    assert controller.error == "Service unavailable"
    assert controller.transitions[-2:] == [S.FAILED, S.IDLE]

    fake.failures.clear()
    post = await controller.submit_new("user-1", valid_form())
    assert post is not None
    assert controller.error is None


def test_oversized_image_is_refused_at_selection(repository):
    controller = BlogFormController(repository)

    assert controller.select_image(png(6 * 1024 * 1024)) is False
    assert controller.image is None
    assert controller.error == "Please select an image under 5MB"


@pytest.mark.asyncio
async def test_oversized_image_never_reaches_storage(repository, fake):
    controller = BlogFormController(repository)
    controller.image = png(6 * 1024 * 1024)

    assert await controller.submit_new("user-1", valid_form()) is None
    assert controller.error == "Please select an image under 5MB"
    assert fake.calls("POST", "/storage/") == []


@pytest.mark.asyncio
async def test_second_submit_while_in_flight_is_refused(repository):
    controller = BlogFormController(repository)
    controller.state = S.SUBMITTING

    with pytest.raises(SubmissionInProgress):
        await controller.submit_new("user-1", valid_form())


@pytest.mark.asyncio
async def test_edit_submission_updates_the_post(repository, fake):
    row = fake.add_post(title="Old title", category="growth")
    post = await repository.fetch_by_id(row["id"])
    controller = BlogFormController(repository)

    updated = await controller.submit_edit(
        post, valid_form(title="New title", excerpt="Short summary", published=True)
    )

    assert updated.title == "New title"
    assert updated.excerpt == "Short summary"
    assert updated.published is True
    assert fake.rows[0]["category"] == "travel"


@pytest.mark.asyncio
async def test_edit_with_new_cover_uploads_then_patches(repository, fake):
    row = fake.add_post()
    post = await repository.fetch_by_id(row["id"])
    controller = BlogFormController(repository)
    assert controller.select_image(png(1024))

    updated = await controller.submit_edit(post, valid_form())

    assert len(fake.objects) == 1
    key = next(iter(fake.objects))
    assert updated.image_url.endswith(key)
