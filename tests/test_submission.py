import unittest

from sqlalchemy.future import select

from survey_fixtures import NOW, DatabaseTestCase, make_question

from survey_pulse import models, schemas
from survey_pulse.exceptions import ConflictError, NotFoundError, ValidationError
from survey_pulse.periods import Period
from survey_pulse.submission import (
    build_rows,
    clear_sessions,
    create_session,
    get_completion,
    get_session_responses,
    has_completed,
    submit_responses,
)

OCTOBER = Period(2026, 10)


def submission(session_id, *answers, **kwargs):
    return schemas.SubmissionIn.model_validate(
        {"sessionId": session_id, "responses": list(answers), **kwargs}
    )


REQUIRED_ANSWERS = (
    {"questionSlug": "role", "optionSlug": "engineer"},
    {"questionSlug": "tools-used", "optionSlugs": ["copilot", "cursor"]},
)


class SubmissionTestCase(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        await self.sync_default_config()
        session = await create_session(self.db)
        await self.db.commit()
        # a rollback expires ORM instances, so keep the plain id around
        self.session_id = session.id

    async def rows_for(self, question_slug):
        result = await self.db.execute(
            select(models.Response)
            .where(
                models.Response.session_id == self.session_id,
                models.Response.question_slug == question_slug,
            )
            .order_by(models.Response.option_slug)
        )
        return result.scalars().all()

    async def submit(self, *answers, **kwargs):
        result = await submit_responses(
            self.db, submission(self.session_id, *answers, **kwargs), now=NOW
        )
        await self.db.commit()
        return result


class SubmitResponsesTests(SubmissionTestCase):
    async def test_full_submission(self):
        result = await self.submit(
            *REQUIRED_ANSWERS,
            {"questionSlug": "years-experience", "numericValue": 7},
            {
                "questionSlug": "tool-experience",
                "experience": [
                    {"optionSlug": "copilot", "awareness": 3, "sentiment": 1},
                    {"optionSlug": "cursor", "awareness": 1, "sentiment": -1},
                ],
            },
            {"questionSlug": "wishlist", "textValue": "  Better context  "},
        )

        self.assertEqual(result.period, OCTOBER)
        self.assertFalse(result.updated)
        self.assertEqual(result.saved_questions[0], "role")

        role = await self.rows_for("role")
        self.assertEqual(len(role), 1)
        self.assertEqual(role[0].single_option_slug, "role_engineer")
        self.assertEqual((role[0].year, role[0].month), (2026, 10))

        tools = await self.rows_for("tools-used")
        self.assertEqual(
            [row.option_slug for row in tools], ["tools-used_copilot", "tools-used_cursor"]
        )

        experience = await self.rows_for("tool-experience")
        self.assertEqual(
            [(r.experience_awareness, r.experience_sentiment) for r in experience],
            [(3, 1), (1, -1)],
        )

        wishlist = await self.rows_for("wishlist")
        self.assertEqual(wishlist[0].freeform_response, "Better context")

        session = await self.db.get(models.Session, self.session_id)
        self.assertTrue(has_completed(session, OCTOBER))
        self.assertFalse(has_completed(session, Period(2026, 11)))

    async def test_write_ins_are_stored_on_their_own_row(self):
        await self.submit(
            {"questionSlug": "role", "textValue": "Data scientist"},
            {
                "questionSlug": "tools-used",
                "optionSlugs": ["tools-used_chatgpt"],
                "textValues": ["Aider", " aider ", "Aider"],
                "comment": "mostly chat",
            },
        )
        role = (await self.rows_for("role"))[0]
        self.assertIsNone(role.single_option_slug)
        self.assertEqual(role.writein_response, "Data scientist")

        tools = await self.rows_for("tools-used")
        self.assertEqual([row.option_slug for row in tools], ["", "tools-used_chatgpt"])
        self.assertEqual(tools[0].multiple_writein_responses, ["Aider", "aider"])
        self.assertEqual(tools[1].comment, "mostly chat")

    async def test_second_submission_conflicts(self):
        await self.submit(*REQUIRED_ANSWERS)
        with self.assertRaises(ConflictError) as ctx:
            await self.submit(*REQUIRED_ANSWERS)
        self.assertIn("October 2026", ctx.exception.detail)
        self.assertEqual(ctx.exception.status_code, 409)

    async def test_update_replaces_previous_selection(self):
        await self.submit(*REQUIRED_ANSWERS)
        result = await self.submit(
            {"questionSlug": "tools-used", "optionSlugs": ["chatgpt"]}, update=True
        )

        self.assertTrue(result.updated)
        tools = await self.rows_for("tools-used")
        self.assertEqual([row.option_slug for row in tools], ["tools-used_chatgpt"])
        # questions not in the update are left alone
        self.assertEqual(len(await self.rows_for("role")), 1)

    async def test_skipped_question(self):
        await self.submit(
            REQUIRED_ANSWERS[0], {"questionSlug": "tools-used", "skipped": True}
        )
        tools = await self.rows_for("tools-used")
        self.assertEqual(len(tools), 1)
        self.assertTrue(tools[0].skipped)
        self.assertEqual(tools[0].option_slug, "")
        self.assertIsNone(tools[0].multiple_writein_responses)

    async def test_experience_without_awareness_drops_sentiment(self):
        await self.submit(
            *REQUIRED_ANSWERS,
            {
                "questionSlug": "tool-experience",
                "experience": [{"optionSlug": "cursor", "awareness": 0, "sentiment": 1}],
            },
        )
        row = (await self.rows_for("tool-experience"))[0]
        self.assertEqual(row.experience_awareness, 0)
        self.assertIsNone(row.experience_sentiment)

    async def test_experience_keeps_question_and_option_comments(self):
        await self.submit(
            *REQUIRED_ANSWERS,
            {
                "questionSlug": "tool-experience",
                "comment": "overall thoughts",
                "experience": [
                    {"optionSlug": "copilot", "awareness": 3, "comment": "copilot note"},
                    {"optionSlug": "cursor", "awareness": 1},
                ],
            },
        )
        rows = await self.rows_for("tool-experience")
        self.assertEqual(
            [(row.option_slug, row.comment) for row in rows],
            [
                ("", "overall thoughts"),
                ("tool-experience_copilot", "copilot note"),
                ("tool-experience_cursor", None),
            ],
        )
        self.assertIsNone(rows[0].experience_awareness)


class SubmissionValidationTests(SubmissionTestCase):
    async def assertRejected(self, *answers, question=None, **kwargs):
        with self.assertRaises(ValidationError) as ctx:
            await self.submit(*answers, **kwargs)
        if question is not None:
            self.assertEqual(ctx.exception.question_slug, question)
        await self.db.rollback()
        return ctx.exception

    async def test_required_question_missing(self):
        error = await self.assertRejected(REQUIRED_ANSWERS[0], question="tools-used")
        self.assertIn("Required question 'tools-used'", error.detail)
        self.assertEqual(await self.rows_for("role"), [])

    async def test_other_month_rejected(self):
        error = await self.assertRejected(
            *REQUIRED_ANSWERS, timeBucket={"month": 9, "year": 2026}
        )
        self.assertIn("2026-10", error.detail)

    async def test_current_month_bucket_accepted(self):
        result = await self.submit(*REQUIRED_ANSWERS, timeBucket={"month": 10, "year": 2026})
        self.assertEqual(result.period, OCTOBER)

    async def test_unknown_question(self):
        await self.assertRejected(
            *REQUIRED_ANSWERS, {"questionSlug": "favourite-ide", "textValue": "vim"},
            question="favourite-ide",
        )

    async def test_duplicate_question(self):
        await self.assertRejected(
            *REQUIRED_ANSWERS, REQUIRED_ANSWERS[0], question="role"
        )

    async def test_option_from_another_question(self):
        await self.assertRejected(
            {"questionSlug": "role", "optionSlug": "copilot"},
            REQUIRED_ANSWERS[1],
            question="role",
        )

    async def test_too_many_selections(self):
        error = await self.assertRejected(
            REQUIRED_ANSWERS[0],
            {"questionSlug": "tools-used", "optionSlugs": ["copilot", "cursor", "chatgpt"]},
            question="tools-used",
        )
        self.assertIn("at most 2", error.detail)

    async def test_numeric_out_of_bounds(self):
        await self.assertRejected(
            *REQUIRED_ANSWERS,
            {"questionSlug": "productivity", "numericValue": 21},
            question="productivity",
        )

    async def test_non_finite_numeric_value(self):
        # no declared bounds, so only the finiteness check applies
        question = make_question("years-experience", "numeric")
        for value in (float("inf"), float("-inf"), float("nan")):
            answer = schemas.AnswerIn.model_validate(
                {"questionSlug": "years-experience", "numericValue": value}
            )
            with self.assertRaises(ValidationError) as ctx:
                build_rows(question, [], answer, self.session_id, OCTOBER)
            self.assertIn("finite", ctx.exception.detail)
            self.assertEqual(ctx.exception.question_slug, "years-experience")

    async def test_missing_value(self):
        await self.assertRejected(
            *REQUIRED_ANSWERS, {"questionSlug": "wishlist", "textValue": "   "},
            question="wishlist",
        )

    async def test_invalid_awareness(self):
        await self.assertRejected(
            *REQUIRED_ANSWERS,
            {
                "questionSlug": "tool-experience",
                "experience": [{"optionSlug": "copilot", "awareness": 4}],
            },
            question="tool-experience",
        )

    async def test_unknown_session(self):
        with self.assertRaises(NotFoundError):
            await submit_responses(
                self.db, submission("missing", *REQUIRED_ANSWERS), now=NOW
            )


class SessionReadBackTests(SubmissionTestCase):
    async def test_session_responses_for_period(self):
        await self.submit(*REQUIRED_ANSWERS)
        rows = await get_session_responses(self.db, self.session_id, OCTOBER)
        self.assertEqual(
            [(r.question_slug, r.option_slug) for r in rows],
            [
                ("role", ""),
                ("tools-used", "tools-used_copilot"),
                ("tools-used", "tools-used_cursor"),
            ],
        )
        self.assertEqual(
            await get_session_responses(self.db, self.session_id, Period(2026, 9)), []
        )

    async def test_completion_counts_skipped_questions(self):
        await self.submit(
            REQUIRED_ANSWERS[0],
            {"questionSlug": "tools-used", "skipped": True},
            {"questionSlug": "wishlist", "skipped": True},
        )
        completion = await get_completion(self.db, self.session_id, OCTOBER)

        self.assertEqual(completion["total_questions"], 6)
        self.assertEqual(completion["total_completed_questions"], 3)
        self.assertEqual(completion["overall_percentage"], 50)
        by_section = {s["section_slug"]: s for s in completion["section_completion"]}
        self.assertEqual(by_section["demographics"]["percentage"], 50)
        self.assertEqual(by_section["tools"]["completed_questions"], 1)
        self.assertEqual(by_section["feedback"]["percentage"], 100)

    async def test_clear_sessions(self):
        await self.submit(*REQUIRED_ANSWERS)
        other = await create_session(self.db)
        await self.db.commit()

        deleted = await clear_sessions(self.db)
        await self.db.commit()

        self.assertEqual(deleted, 2)
        self.assertEqual((await self.db.execute(select(models.Response))).scalars().all(), [])
        with self.assertRaises(NotFoundError):
            await get_session_responses(self.db, other.id, OCTOBER)


if __name__ == "__main__":
    unittest.main()
