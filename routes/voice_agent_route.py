from fastapi import APIRouter, HTTPException, Query, Request

from controllers.conversation_controller import get_patient_window
from controllers.voice_agent_controller import provider_report_token, symptom_recorder_token

router = APIRouter(prefix="/voice-agent")


@router.get("/symptom-recorder/token")
async def get_symptom_recorder_token(request: Request):
	"""Return an ephemeral realtime credential for the symptom recorder."""
	try:
		return await symptom_recorder_token(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/provider-report/token")
async def get_provider_report_token(request: Request):
	"""Return an ephemeral realtime credential for the provider report assistant."""
	try:
		return await provider_report_token(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/provider-report/patient-data")
async def get_provider_report_patient_data(
	request: Request,
	patient_id: str = Query(..., alias="patientId", min_length=1),
	window_days: int = Query(7, alias="windowDays"),
):
	"""Return the patient's recent saved conversations with summaries."""
	try:
		return await get_patient_window(request, patient_id, window_days)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
