# backend/app.py
import json

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

import config
from analysis_client import AnalysisClient, make_groq_client
from db import SessionLocal, engine
from entities import FlowStep, ScopeCategory
from errors import ConsensusAppError
from export_service import DOCX_MEDIA_TYPE, build_docx, docx_to_html
from session_service import SessionService
from store import EntityStore, SqlRepository

config.configure_logging()

service = SessionService(
    EntityStore(SqlRepository(SessionLocal, engine)),
    AnalysisClient(make_groq_client()),
)

app = FastAPI(title="Klant in Beeld Consensus API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)


def get_service() -> SessionService:
    return service


@app.exception_handler(ConsensusAppError)
def domain_error(request: Request, exc: ConsensusAppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def parse_json_form(raw: str, what: str):
    try:
        return json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{what} is not valid JSON")


# ---------- sessions ----------
@app.post("/api/sessions")
def create_session(name: str = Form(""), svc: SessionService = Depends(get_service)):
    handle = svc.create_session(name)
    return svc.load_session(handle).to_dict()


@app.get("/api/sessions")
def list_sessions(svc: SessionService = Depends(get_service)):
    return [s.to_dict() for s in svc.list_sessions()]


@app.get("/api/sessions/resumable")
def resumable_session(svc: SessionService = Depends(get_service)):
    s = svc.find_resumable_session()
    return {"session": s.to_dict() if s else None}


@app.get("/api/sessions/{session_id}")
def load_session(session_id: str, svc: SessionService = Depends(get_service)):
    return svc.load_session(svc.open(session_id)).to_dict()


@app.post("/api/sessions/{session_id}/close")
def close_session(session_id: str, svc: SessionService = Depends(get_service)):
    return svc.close_session(svc.open(session_id)).to_dict()


@app.delete("/api/sessions/{session_id}")
def delete_session(session_id: str, svc: SessionService = Depends(get_service)):
    svc.delete_session(svc.open(session_id))
    return {"ok": True}


# ---------- documents ----------
@app.post("/api/sessions/{session_id}/documents")
def upload_document(session_id: str, file: UploadFile = File(...),
                    svc: SessionService = Depends(get_service)):
    handle = svc.open(session_id)
    doc = svc.import_canvas(handle, file.filename or "", file.file.read())
    return doc.to_dict()


@app.get("/api/sessions/{session_id}/documents")
def list_documents(session_id: str, svc: SessionService = Depends(get_service)):
    return [d.to_dict() for d in svc.documents(svc.open(session_id))]


@app.post("/api/sessions/{session_id}/documents/{document_id}/responses")
def update_response(session_id: str, document_id: str, question_type: str = Form(...),
                    text: str = Form(""), svc: SessionService = Depends(get_service)):
    try:
        doc = svc.update_document_response(svc.open(session_id), document_id, question_type, text)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown question type {question_type}")
    return doc.to_dict()


@app.delete("/api/sessions/{session_id}/documents/{document_id}")
def remove_document(session_id: str, document_id: str, svc: SessionService = Depends(get_service)):
    svc.remove_document(svc.open(session_id), document_id)
    return {"ok": True}


@app.get("/api/sessions/{session_id}/matrix")
def matrix(session_id: str, svc: SessionService = Depends(get_service)):
    return svc.matrix(svc.open(session_id))


# ---------- flow ----------
@app.get("/api/sessions/{session_id}/flow")
def flow_state(session_id: str, svc: SessionService = Depends(get_service)):
    return svc.flow_state(svc.open(session_id)).to_dict()


@app.post("/api/sessions/{session_id}/flow/navigate")
def navigate(session_id: str, step: str = Form(...), svc: SessionService = Depends(get_service)):
    return svc.navigate_to(svc.open(session_id), _step(step)).to_dict()


@app.post("/api/sessions/{session_id}/flow/advance")
def advance(session_id: str, svc: SessionService = Depends(get_service)):
    return svc.advance(svc.open(session_id)).to_dict()


def _step(step: str) -> FlowStep:
    try:
        return FlowStep(step)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown step {step}")


def _category(category: str) -> ScopeCategory:
    try:
        return ScopeCategory(category)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown scope category {category}")


# ---------- vision ----------
@app.post("/api/sessions/{session_id}/steps/{step}/analyze")
def analyze(session_id: str, step: str, svc: SessionService = Depends(get_service)):
    return svc.run_analysis(svc.open(session_id), _step(step)).to_dict()


@app.post("/api/sessions/{session_id}/steps/{step}/themes/{theme_id}")
def rename_theme(session_id: str, step: str, theme_id: str, name: str = Form(None),
                 description: str = Form(None), svc: SessionService = Depends(get_service)):
    themes = svc.rename_theme(svc.open(session_id), _step(step), theme_id, name, description)
    return [t.to_dict() for t in themes]


@app.delete("/api/sessions/{session_id}/steps/{step}/themes/{theme_id}")
def delete_theme(session_id: str, step: str, theme_id: str, svc: SessionService = Depends(get_service)):
    return [t.to_dict() for t in svc.delete_theme(svc.open(session_id), _step(step), theme_id)]


@app.post("/api/sessions/{session_id}/steps/{step}/proposals")
def generate_proposals(session_id: str, step: str, svc: SessionService = Depends(get_service)):
    return svc.generate_proposals(svc.open(session_id), _step(step)).to_dict()


@app.get("/api/sessions/{session_id}/proposals")
def list_proposals(session_id: str, question_type: str = None, svc: SessionService = Depends(get_service)):
    return [p.to_dict() for p in svc.proposals(svc.open(session_id), question_type)]


@app.post("/api/sessions/{session_id}/proposals/{proposal_id}/variants/{variant_id}/text")
def edit_variant(session_id: str, proposal_id: str, variant_id: str, text: str = Form(...),
                 svc: SessionService = Depends(get_service)):
    return svc.edit_variant_text(svc.open(session_id), proposal_id, variant_id, text).to_dict()


@app.post("/api/sessions/{session_id}/proposals/{proposal_id}/variants/{variant_id}/votes")
def cast_vote(session_id: str, proposal_id: str, variant_id: str, respondent_id: str = Form(...),
              value: str = Form(...), comment: str = Form(None), svc: SessionService = Depends(get_service)):
    vote = svc.cast_vote(svc.open(session_id), proposal_id, variant_id, respondent_id, value, comment)
    return vote.to_dict()


@app.get("/api/sessions/{session_id}/proposals/{proposal_id}/variants/{variant_id}/consent")
def consent(session_id: str, proposal_id: str, variant_id: str, svc: SessionService = Depends(get_service)):
    return svc.consent_for(svc.open(session_id), proposal_id, variant_id).to_dict()


@app.post("/api/sessions/{session_id}/proposals/{proposal_id}/variants/{variant_id}/approve")
def approve_variant(session_id: str, proposal_id: str, variant_id: str, override: bool = Form(False),
                    svc: SessionService = Depends(get_service)):
    return svc.approve_variant(svc.open(session_id), proposal_id, variant_id, override).to_dict()


@app.get("/api/sessions/{session_id}/approved")
def approved_texts(session_id: str, svc: SessionService = Depends(get_service)):
    return [t.to_dict() for t in svc.approved_texts(svc.open(session_id))]


# ---------- goals ----------
@app.post("/api/sessions/{session_id}/goals/cluster")
def cluster_goals(session_id: str, svc: SessionService = Depends(get_service)):
    return [c.to_dict() for c in svc.cluster_goals(svc.open(session_id))]


@app.post("/api/sessions/{session_id}/goals/select")
def select_clusters(session_id: str, cluster_ids_json: str = Form(...),
                    svc: SessionService = Depends(get_service)):
    ids = parse_json_form(cluster_ids_json, "cluster_ids_json")
    return [c.to_dict() for c in svc.select_clusters(svc.open(session_id), ids)]


@app.post("/api/sessions/{session_id}/goals/ballots")
def submit_ballot(session_id: str, voter: str = Form(...), allocations_json: str = Form(...),
                  svc: SessionService = Depends(get_service)):
    allocations = parse_json_form(allocations_json, "allocations_json")
    if not isinstance(allocations, dict):
        raise HTTPException(status_code=400, detail="allocations_json must be an object")
    return svc.submit_ballot(svc.open(session_id), voter, allocations).to_dict()


@app.get("/api/sessions/{session_id}/goals/tally")
def goal_tally(session_id: str, svc: SessionService = Depends(get_service)):
    return [c.to_dict() for c in svc.goal_tally(svc.open(session_id))]


@app.get("/api/sessions/{session_id}/goals/ranking")
def goal_ranking(session_id: str, svc: SessionService = Depends(get_service)):
    return {"cluster_ids": svc.goal_ranking(svc.open(session_id)).cluster_ids}


@app.post("/api/sessions/{session_id}/goals/ranking")
def set_ranking(session_id: str, cluster_ids_json: str = Form(...), svc: SessionService = Depends(get_service)):
    ids = parse_json_form(cluster_ids_json, "cluster_ids_json")
    return {"cluster_ids": svc.set_ranking(svc.open(session_id), ids).cluster_ids}


@app.post("/api/sessions/{session_id}/goals/approve")
def approve_goals(session_id: str, formulations_json: str = Form("{}"),
                  svc: SessionService = Depends(get_service)):
    formulations = parse_json_form(formulations_json, "formulations_json")
    return [t.to_dict() for t in svc.approve_goals(svc.open(session_id), formulations)]


# ---------- scope ----------
@app.get("/api/sessions/{session_id}/scope/items")
def scope_items(session_id: str, svc: SessionService = Depends(get_service)):
    return [i.to_dict() for i in svc.scope_items(svc.open(session_id))]


@app.post("/api/sessions/{session_id}/scope/items")
def add_scope_item(session_id: str, text: str = Form(...), category: str = Form("unclear"),
                   svc: SessionService = Depends(get_service)):
    return [i.to_dict() for i in svc.add_scope_item(svc.open(session_id), text, _category(category))]


@app.post("/api/sessions/{session_id}/scope/items/{item_id}")
def move_scope_item(session_id: str, item_id: str, category: str = Form(...),
                    svc: SessionService = Depends(get_service)):
    return [i.to_dict() for i in svc.move_scope_item(svc.open(session_id), item_id, _category(category))]


@app.post("/api/sessions/{session_id}/scope/analyze")
def analyze_scope(session_id: str, svc: SessionService = Depends(get_service)):
    return [i.to_dict() for i in svc.analyze_scope(svc.open(session_id))]


@app.post("/api/sessions/{session_id}/scope/approve")
def approve_scope(session_id: str, svc: SessionService = Depends(get_service)):
    return svc.approve_scope(svc.open(session_id)).to_dict()


# ---------- export ----------
@app.get("/api/sessions/{session_id}/export/docx")
def export_docx(session_id: str, svc: SessionService = Depends(get_service)):
    filename, data = svc.export_docx(svc.open(session_id))
    return Response(content=data, media_type=DOCX_MEDIA_TYPE,
                    headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@app.get("/api/sessions/{session_id}/export/preview")
def export_preview(session_id: str, svc: SessionService = Depends(get_service)):
    handle = svc.open(session_id)
    data = build_docx(svc.build_final_document(handle), svc.session(handle).name)
    return JSONResponse({"html": docx_to_html(data)})


@app.get("/api/sessions/{session_id}/export/json")
def export_json(session_id: str, svc: SessionService = Depends(get_service)):
    return svc.export_session_data(svc.open(session_id))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
