# ==============================================================================
# app/billing/importer.py
# ------------------------------------------------------------------------------
# Bulk import: one uploaded usage export becomes one InvoiceBatch with an
# invoice per active representative. Rows are processed sequentially so that
# on-demand representative creation sees the effect of earlier rows.
# ==============================================================================

import logging
import os

from app.models import FileImport, InvoiceBatch, utcnow
from app.billing import parser
from app.billing.errors import InvoiceIntegrityError, UnparseableFileError


class BulkImporter:

    def __init__(self, session, registry, builder):
        self.session = session
        self.registry = registry
        self.builder = builder

    def collect_activities(self, rows, fmt):
        """
        Validates raw rows and resolves each usage row to its representative,
        creating representatives with the default price schedule as needed.

        Returns:
            dict: 'records_processed', 'records_skipped' and 'activities', each
                  activity carrying 'representative_id', 'limited_volumes' and
                  'unlimited_counts'.
        """
        parsed = parser.parse_rows(rows, fmt)
        activities = []
        for usage in parsed['rows']:
            rep, created = self.registry.get_or_create(usage['admin_username'], **usage['details'])
            activities.append({
                'representative_id': rep.id,
                'admin_username': rep.admin_username,
                'row_number': usage['row_number'],
                'limited_volumes': usage['limited_volumes'],
                'unlimited_counts': usage['unlimited_counts'],
            })
        return {
            'records_processed': parsed['records_processed'],
            'records_skipped': parsed['records_skipped'],
            'activities': activities,
        }

    def import_rows(self, rows, fmt=parser.FORMAT_NAMED, file_name='upload.json', batch_name=None):
        """
        Imports already-read rows. Returns a summary dict with the batch, the
        created invoices and the failed representatives.

        Any error other than a per-invoice InvoiceIntegrityError marks the
        batch and the FileImport failed and is re-raised; invoices committed
        before it stay in the batch.
        """
        batch = InvoiceBatch(batch_name=batch_name or f'{file_name} {utcnow():%Y-%m-%d %H:%M}',
                             file_name=file_name, processing_status='pending')
        self.session.add(batch)
        self.session.commit()
        file_import = FileImport(file_name=file_name, batch_id=batch.id, status='processing')
        self.session.add(file_import)
        self.session.commit()

        logging.info(f"Import started: {file_name} ({len(rows)} rows, {fmt} layout)")
        try:
            collected = self.collect_activities(rows, fmt)

            invoices = []
            failures = []
            processed = collected['records_processed']
            skipped = collected['records_skipped']
            for activity in collected['activities']:
                rep = self.registry.get(activity['representative_id'])
                try:
                    invoice = self.builder.create_invoice(rep, activity, batch=batch)
                except InvoiceIntegrityError as e:
                    failures.append({'admin_username': activity['admin_username'],
                                     'row_number': activity['row_number'], 'error': str(e)})
                    continue
                if invoice is None:
                    # Priced to zero: the row carried no billable activity after all
                    processed -= 1
                    skipped += 1
                    continue
                invoices.append(invoice)
        except Exception as e:
            self.session.rollback()
            batch.refresh_totals()
            batch.processing_status = 'failed'
            file_import.status = 'failed'
            file_import.error_details = f'خطای پردازش: {e}'
            self.session.commit()
            logging.error(f"Import of {file_name} failed while processing rows", exc_info=True)
            raise

        batch.refresh_totals()
        batch.processing_status = 'completed'
        file_import.records_processed = processed
        file_import.records_skipped = skipped
        file_import.invoices_created = len(invoices)
        file_import.status = 'completed'
        if failures:
            file_import.error_details = '\n'.join(
                f"ردیف {f['row_number']} ({f['admin_username']}): {f['error']}" for f in failures)
        self.session.commit()

        logging.info(f"Import finished: {file_name}: {processed} processed, "
                     f"{skipped} skipped, {len(invoices)} invoices, {len(failures)} failed, "
                     f"batch total {batch.total_amount}")
        return {
            'file_import': file_import,
            'batch': batch,
            'records_processed': processed,
            'records_skipped': skipped,
            'invoices': invoices,
            'failures': failures,
        }

    def import_file(self, filepath, batch_name=None):
        """
        Reads and imports one uploaded file.

        Raises:
            UnparseableFileError: The file could not be read; a failed
                FileImport row is recorded and no invoice is created.
        """
        file_name = os.path.basename(filepath)
        try:
            rows, fmt = parser.read_upload(filepath)
        except UnparseableFileError as e:
            self.session.rollback()
            self.session.add(FileImport(file_name=file_name, status='failed', error_details=str(e)))
            self.session.commit()
            logging.error(f"Import of {file_name} failed: {e}")
            raise
        return self.import_rows(rows, fmt, file_name=file_name, batch_name=batch_name)
