import re
import motor.motor_asyncio
from typing import Optional, Dict, List, Any, Iterable
from pcru_faq.config import Config
from pcru_faq.exceptions import StoreUnavailable
from pcru_faq.schemas import Contact, QuestionAnswerEntry
from pcru_faq.utils.logging_utils import get_logger

logger = get_logger()

QA_COLLECTION = "QuestionsAnswers"
KEYWORD_COLLECTION = "Keywords"
ANSWER_KEYWORD_COLLECTION = "AnswersKeywords"
SYNONYM_COLLECTION = "KeywordSynonyms"
NEGATIVE_KEYWORD_COLLECTION = "NegativeKeywords"
STOPWORD_COLLECTION = "Stopwords"
SETTINGS_COLLECTION = "AppSettings"
ORGANIZATION_COLLECTION = "Organizations"
OFFICER_COLLECTION = "Officers"
CATEGORY_COLLECTION = "Categories"
CATEGORY_CONTACT_COLLECTION = "Categories_Contact"

MAP_URL_BODY_PATTERN = r"maps\.app\.goo\.gl|maps\.google|goo\.gl/maps|google\.com/maps"
COORDINATE_BODY_PATTERN = r"[0-9]+\.[0-9]+,\s*[0-9]+\.[0-9]+"

# Upper bound on candidates pulled per keyword query; ranking happens in Python.
KEYWORD_CANDIDATE_LIMIT = 200


def _contains(term: str) -> Dict[str, Any]:
    """Case-insensitive substring condition (SQL LIKE '%term%')."""
    return {"$regex": re.escape(str(term)), "$options": "i"}


def _optional_text(value: Any) -> Optional[str]:
    text = str(value).strip() if value is not None else ""
    return text or None


def _to_entry(doc: Dict[str, Any], keywords: Optional[Iterable[str]] = None) -> QuestionAnswerEntry:
    return QuestionAnswerEntry(
        id=int(doc.get("QuestionsAnswersID") or 0),
        title=str(doc.get("QuestionTitle") or ""),
        body=str(doc.get("QuestionText") or ""),
        keywords=[str(k) for k in (keywords or []) if str(k).strip()],
    )


class AsyncKnowledgeBaseEngine:
    """
    Read-only access to the FAQ knowledge base.

    Collections mirror the admin tooling's tables (QuestionsAnswers, Keywords,
    AnswersKeywords, ...). Every query raises StoreUnavailable on failure;
    callers decide how to degrade.
    """

    def __init__(self, uri: Optional[str] = None, db_name: Optional[str] = None):
        self.uri = uri if uri is not None else Config.MONGO_URI
        self.db_name = db_name or Config.MONGO_DB_NAME
        self.client = None
        self.db = None

    async def connect(self):
        """Establish connection to MongoDB"""
        try:
            if not self.uri:
                print("Error: MONGO_URI not found in .env")
                return

            self.client = motor.motor_asyncio.AsyncIOMotorClient(self.uri, serverSelectionTimeoutMS=5000)

            # Verify connection
            await self.client.admin.command('ping')

            self.db = self.client[self.db_name]
            print(f"[AsyncDB] Successfully connected to MongoDB: {self.db_name}")

            await self._ensure_runtime_indexes()

        except Exception as e:
            self.db = None
            print(f"[AsyncDB][ERROR] Database connection failed: {e}")

    def close(self):
        if self.client is not None:
            self.client.close()
        self.client = None
        self.db = None

    async def _ensure_runtime_indexes(self) -> None:
        """Create frequently used indexes for stable runtime latency."""
        if self.db is None:
            return
        specs = [
            (QA_COLLECTION, [("QuestionsAnswersID", 1)], "qa_id"),
            (KEYWORD_COLLECTION, [("KeywordID", 1)], "keyword_id"),
            (ANSWER_KEYWORD_COLLECTION, [("KeywordID", 1), ("QuestionsAnswersID", 1)], "answer_keyword_pair"),
            (SETTINGS_COLLECTION, [("SettingKey", 1)], "setting_key"),
        ]
        for coll_name, keys, name in specs:
            try:
                await self.db[coll_name].create_index(keys, name=name)
            except Exception as e:
                print(f"{coll_name} index ensure error: {e}")

    @property
    def is_connected(self) -> bool:
        return self.db is not None

    def _require_db(self):
        if self.db is None:
            raise StoreUnavailable("knowledge base is not connected")
        return self.db

    async def find_entries_by_keyword(
        self,
        term: str,
        limit: int = KEYWORD_CANDIDATE_LIMIT,
        exclude: Iterable[str] = (),
    ) -> List[QuestionAnswerEntry]:
        """
        Entries joined to keywords whose text contains `term`, best first.

        Keywords listed in `exclude` (compared lower-cased) are dropped before
        counting, then entries are ordered by distinct matching keyword count
        descending and entry id ascending, so the limit never cuts a better
        ranked entry.
        """
        db = self._require_db()
        term = str(term or "").strip()
        if not term:
            return []

        excluded = sorted({str(w).strip().lower() for w in (exclude or []) if str(w).strip()})
        keyword_match: Dict[str, Any] = {"KeywordText": _contains(term)}
        if excluded:
            keyword_match["$expr"] = {"$not": [{"$in": [{"$toLower": "$KeywordText"}, excluded]}]}

        pipeline = [
            {"$match": keyword_match},
            {"$lookup": {
                "from": ANSWER_KEYWORD_COLLECTION,
                "localField": "KeywordID",
                "foreignField": "KeywordID",
                "as": "links",
            }},
            {"$unwind": "$links"},
            {"$group": {
                "_id": "$links.QuestionsAnswersID",
                "keywords": {"$addToSet": "$KeywordText"},
            }},
            {"$addFields": {"keyword_count": {"$size": "$keywords"}}},
            {"$sort": {"keyword_count": -1, "_id": 1}},
            {"$lookup": {
                "from": QA_COLLECTION,
                "localField": "_id",
                "foreignField": "QuestionsAnswersID",
                "as": "qa",
            }},
            {"$unwind": "$qa"},
            {"$limit": int(limit)},
        ]
        try:
            rows = await db[KEYWORD_COLLECTION].aggregate(pipeline).to_list(length=int(limit))
        except Exception as e:
            raise StoreUnavailable(f"keyword query failed: {e}") from e
        return [_to_entry(row.get("qa") or {}, row.get("keywords")) for row in rows]

    async def find_entries_by_text(self, term: str, limit: int = 1) -> List[QuestionAnswerEntry]:
        """Substring match of `term` against title + ' ' + body, store order."""
        db = self._require_db()
        term = str(term or "").strip()
        if not term:
            return []

        pipeline = [
            {"$addFields": {"_haystack": {"$concat": [
                {"$ifNull": ["$QuestionTitle", ""]},
                " ",
                {"$ifNull": ["$QuestionText", ""]},
            ]}}},
            {"$match": {"_haystack": _contains(term)}},
            {"$sort": {"QuestionsAnswersID": 1}},
            {"$limit": int(limit)},
            {"$lookup": {
                "from": ANSWER_KEYWORD_COLLECTION,
                "localField": "QuestionsAnswersID",
                "foreignField": "QuestionsAnswersID",
                "as": "links",
            }},
            {"$lookup": {
                "from": KEYWORD_COLLECTION,
                "localField": "links.KeywordID",
                "foreignField": "KeywordID",
                "as": "kw",
            }},
            {"$project": {"_id": 0, "QuestionsAnswersID": 1, "QuestionTitle": 1, "QuestionText": 1, "kw.KeywordText": 1}},
        ]
        try:
            rows = await db[QA_COLLECTION].aggregate(pipeline).to_list(length=int(limit))
        except Exception as e:
            raise StoreUnavailable(f"text query failed: {e}") from e
        return [_to_entry(row, [k.get("KeywordText") for k in row.get("kw", [])]) for row in rows]

    async def find_navigation_entries(self, title_terms: Iterable[str], limit: int = 1) -> List[QuestionAnswerEntry]:
        """Entries titled like a location and carrying a map link or coordinates, newest first."""
        db = self._require_db()
        terms = [str(t).strip() for t in (title_terms or []) if str(t).strip()]
        if not terms:
            return []

        query = {
            "$and": [
                {"$or": [{"QuestionTitle": _contains(t)} for t in terms]},
                {"$or": [
                    {"QuestionText": {"$regex": MAP_URL_BODY_PATTERN, "$options": "i"}},
                    {"QuestionText": {"$regex": COORDINATE_BODY_PATTERN}},
                ]},
            ]
        }
        try:
            cursor = db[QA_COLLECTION].find(
                query,
                {"_id": 0, "QuestionsAnswersID": 1, "QuestionTitle": 1, "QuestionText": 1},
            ).sort("QuestionsAnswersID", -1).limit(int(limit))
            rows = await cursor.to_list(length=int(limit))
        except Exception as e:
            raise StoreUnavailable(f"navigation query failed: {e}") from e
        return [_to_entry(row) for row in rows]

    async def get_setting(self, key: str) -> Optional[str]:
        db = self._require_db()
        try:
            doc = await db[SETTINGS_COLLECTION].find_one({"SettingKey": key}, {"_id": 0, "SettingValue": 1})
        except Exception as e:
            raise StoreUnavailable(f"settings query failed: {e}") from e
        if not doc or doc.get("SettingValue") is None:
            return None
        return str(doc["SettingValue"])

    async def load_negative_keywords(self) -> List[str]:
        db = self._require_db()
        try:
            rows = await db[NEGATIVE_KEYWORD_COLLECTION].find(
                {"IsActive": {"$ne": 0}},
                {"_id": 0, "Word": 1},
            ).to_list(length=None)
        except Exception as e:
            raise StoreUnavailable(f"negative keyword query failed: {e}") from e
        return [str(r.get("Word")).strip() for r in rows if str(r.get("Word") or "").strip()]

    async def load_stopwords(self) -> List[str]:
        db = self._require_db()
        try:
            rows = await db[STOPWORD_COLLECTION].find({}, {"_id": 0, "StopwordText": 1}).to_list(length=None)
        except Exception as e:
            raise StoreUnavailable(f"stopword query failed: {e}") from e
        return [str(r.get("StopwordText")).strip() for r in rows if str(r.get("StopwordText") or "").strip()]

    async def load_synonyms(self) -> Dict[str, str]:
        """Active synonyms as {input word: canonical keyword}; the highest score wins per input."""
        db = self._require_db()
        pipeline = [
            {"$match": {"IsActive": {"$ne": 0}}},
            {"$lookup": {
                "from": KEYWORD_COLLECTION,
                "localField": "TargetKeywordID",
                "foreignField": "KeywordID",
                "as": "target",
            }},
            {"$unwind": "$target"},
            {"$sort": {"SimilarityScore": 1}},
            {"$project": {"_id": 0, "InputWord": 1, "KeywordText": "$target.KeywordText"}},
        ]
        try:
            rows = await db[SYNONYM_COLLECTION].aggregate(pipeline).to_list(length=None)
        except Exception as e:
            raise StoreUnavailable(f"synonym query failed: {e}") from e

        synonyms: Dict[str, str] = {}
        # Ascending score, so later (higher) rows overwrite earlier ones.
        for row in rows:
            word = str(row.get("InputWord") or "").strip()
            target = str(row.get("KeywordText") or "").strip()
            if word and target:
                synonyms[word] = target
        return synonyms

    async def get_default_contacts(self) -> List[Contact]:
        """All organization/category contacts, organization order then category name."""
        db = self._require_db()
        pipeline = [
            {"$lookup": {
                "from": OFFICER_COLLECTION,
                "localField": "OrgID",
                "foreignField": "OrgID",
                "as": "officers",
            }},
            {"$unwind": {"path": "$officers", "preserveNullAndEmptyArrays": True}},
            {"$lookup": {
                "from": CATEGORY_COLLECTION,
                "localField": "officers.OfficerID",
                "foreignField": "OfficerID",
                "as": "categories",
            }},
            {"$unwind": {"path": "$categories", "preserveNullAndEmptyArrays": True}},
            {"$lookup": {
                "from": CATEGORY_CONTACT_COLLECTION,
                "localField": "categories.CategoriesID",
                "foreignField": "CategoriesID",
                "as": "contacts",
            }},
            {"$unwind": {"path": "$contacts", "preserveNullAndEmptyArrays": True}},
            {"$sort": {"OrgID": 1, "categories.CategoriesName": 1}},
            {"$project": {
                "_id": 0,
                "organization": "$OrgName",
                "category": "$categories.CategoriesName",
                "category_id": "$categories.CategoriesID",
                "contact": "$contacts.Contact",
            }},
        ]
        try:
            rows = await db[ORGANIZATION_COLLECTION].aggregate(pipeline).to_list(length=None)
        except Exception as e:
            raise StoreUnavailable(f"contact query failed: {e}") from e

        contacts = []
        for row in rows:
            contact = str(row.get("contact") or "").strip()
            # Organizations without categories are still listed.
            if not contact and row.get("category_id") is not None:
                continue
            contacts.append(Contact(
                organization=_optional_text(row.get("organization")),
                category=_optional_text(row.get("category")),
                contact=contact or None,
            ))
        return contacts
