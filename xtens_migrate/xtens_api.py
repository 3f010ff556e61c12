import logging

import requests

from . import settings


def sample_by_arrival_code_query(arrival_code, data_type_id, field_name, field_value):
    """
     dataSearch payload: DNA sample with the given arrival code that has a child
     data of data_type_id whose field_name equals field_value
    """
    return {
        "queryArgs": {
            "wantsSubject": True,
            "dataType": settings.DNA_DATA_TYPE_ID,
            "model": "Sample",
            "content": [{
                "fieldName": "arrival_code",
                "fieldType": "text",
                "comparator": "=",
                "fieldValue": arrival_code,
            }, {
                "dataType": data_type_id,
                "model": "Data",
                "content": [{
                    "fieldName": field_name,
                    "fieldType": "text",
                    "comparator": "=",
                    "fieldValue": field_value,
                }],
            }],
        }
    }


def subject_by_registry_id_query(registry_id):
    """
     dataSearch payload: patient whose NB clinical situation has the given
     Italian NB registry id
    """
    return {
        "queryArgs": {
            "wantsSubject": True,
            "dataType": settings.PATIENT_SUBJECT_TYPE_ID,
            "model": "Subject",
            "content": [{
                "dataType": settings.NB_CLINICAL_SITUATION_DATA_TYPE_ID,
                "model": "Data",
                "content": [{
                    "fieldName": "italian_nb_registry_id",
                    "fieldType": "integer",
                    "comparator": "=",
                    "fieldValue": registry_id,
                }],
            }],
        }
    }


def sample_by_biobank_code_query(biobank_code, sample_type_id=settings.FLUID_SAMPLE_TYPE_ID):
    return {
        "queryArgs": {
            "wantsSubject": False,
            "dataType": sample_type_id,
            "model": "Sample",
            "content": [{
                "specializedQuery": "Sample",
                "biobankCode": biobank_code,
                "biobankCodeComparator": "=",
            }, {
                "specializedQuery": "Sample",
            }],
        }
    }


def subjects_with_personal_info_query():
    return {
        "isStream": False,
        "queryArgs": {
            "wantsSubject": True,
            "wantsPersonalInfo": True,
            "dataType": settings.PATIENT_SUBJECT_TYPE_ID,
            "model": "Subject",
            "content": [{"personalDetails": True}, {"specializedQuery": "Subject"}],
        }
    }


def data_by_type_query(data_type_id):
    return {
        "queryArgs": {
            "wantsPersonalInfo": True,
            "wantsSubject": True,
            "dataType": data_type_id,
            "model": "Data",
        }
    }


class XtensClient:
    def __init__(self, base_url=settings.XTENS_BASE_URL,
                 bearer_token=settings.BEARER_TOKEN,
                 timeout=settings.HTTP_TIMEOUT,
                 logger=None):
        self.base_url = base_url.rstrip('/')
        self.bearer_token = bearer_token
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def get_uri(self, urn):
        return self.base_url + urn

    def get_response(self, method, urn, **kwargs):
        uri = self.get_uri(urn)
        self.logger.debug(method.upper() + ' [' + uri + ']')
        response = requests.request(method, uri, headers={'Authorization': 'Bearer ' + self.bearer_token},
                                    timeout=self.timeout, **kwargs)
        self.logger.debug('response: [' + str(response.status_code) + ']')
        # 4xx and 5xx raise requests.HTTPError
        response.raise_for_status()
        return response

    def data_search(self, query_payload):
        response = self.get_response('post', '/query/dataSearch', json=query_payload)
        body = response.json() or {}
        return body.get('data') or []

    def get_sample(self, sample_id, populate='donor'):
        response = self.get_response('get', '/sample/' + str(sample_id), params={'populate': populate})
        return response.json()

    def find_samples(self, biobank_code):
        response = self.get_response('get', '/sample', params={'biobankCode': biobank_code})
        return response.json() or []

    def create_sample(self, sample_type_id, metadata, donor, biobank, owner=None, notes=None):
        payload = {'type': sample_type_id, 'metadata': metadata, 'donor': list(donor),
                   'biobank': biobank, 'tags': None, 'notes': notes}
        if owner is not None:
            payload['owner'] = owner
        response = self.get_response('post', '/sample', json=payload)
        return response.json()

    def update_sample(self, sample):
        response = self.get_response('put', '/sample/' + str(sample['id']), json=sample)
        return response.json()

    def create_data(self, data_type_id, metadata, owner=None, parent_subject=None,
                    parent_sample=None, parent_data=None, date=None, notes=None):
        payload = {'type': data_type_id, 'metadata': metadata}
        if owner is not None:
            payload['owner'] = owner
        if parent_subject:
            payload['parentSubject'] = list(parent_subject)
        if parent_sample:
            payload['parentSample'] = list(parent_sample)
        if parent_data:
            payload['parentData'] = list(parent_data)
        if date is not None:
            payload['date'] = date
        if notes is not None:
            payload['notes'] = notes
        response = self.get_response('post', '/data', json=payload)
        return response.json()

    def update_data(self, data_id, data_type_id, metadata, owner=None, date=None):
        payload = {'id': data_id, 'type': data_type_id, 'metadata': metadata}
        if owner is not None:
            payload['owner'] = owner
        if date is not None:
            payload['date'] = date
        response = self.get_response('put', '/data/' + str(data_id), json=payload)
        return response.json()

    def delete_data(self, data_id):
        self.get_response('delete', '/data/' + str(data_id))
